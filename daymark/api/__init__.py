"""
API orchestration boundary for Daymark.

Design intent:
- Expose thin, typed endpoints for logging, finalization, gaps, and reports.
- Map typed domain errors to predictable HTTP status codes.
- Orchestrate modules without embedding domain logic in routers.
"""
