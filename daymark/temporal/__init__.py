"""
Temporal integrity boundary for Daymark.

Design intent:
- Measure how long after the event each record was written.
- Surface documentation gaps with their user explanations.
- Stay pure: no storage access, no clock reads.
"""
