"""
Models module - Pydantic models for the KYC domain.

Difference from schemas:
- Models: verification records, account flags, audit entries (internal)
- Schemas: API contract (what client sends/receives)
"""
