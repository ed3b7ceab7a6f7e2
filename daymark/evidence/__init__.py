"""
Evidence integrity boundary for Daymark.

Design intent:
- Stamp records once at first persist and never again.
- Keep finalized records immutable; route every later change into revisions.
- Report partial failures instead of hiding them.
"""
