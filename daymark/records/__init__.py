"""
Record orchestration boundary for Daymark.

Design intent:
- Own the load/mutate/write cycle for each collection.
- Wire clock, config, and store into the pure domain modules.
"""
