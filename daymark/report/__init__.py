"""
Evidence report boundary for Daymark.

Design intent:
- Compose already-computed facts into a fixed section order.
- Never drop or summarize away raw records.
"""
