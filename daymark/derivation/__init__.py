"""
Functional-capacity derivation boundary for Daymark.

Design intent:
- Turn logged evidence into classified capacity claims.
- Keep every claim linked to the record ids that support it.
- Use closed rule tables instead of free-text keyword matching.
"""
