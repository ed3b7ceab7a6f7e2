"""
Daymark evidence core package.

Design intent:
- Keep symptom and activity records trustworthy as documentation evidence.
- Keep domain modules (evidence/temporal/derivation/report) independent of the API.
"""
