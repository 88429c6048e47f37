"""
KYC Verification Service
Verification state machine and consistency engine for a student / employer
job marketplace.

Architecture:
- VerificationRecord: the authoritative KYC document (MongoDB)
- SubjectAccount: denormalized flags, always derived from the record
- Audit trail: one immutable entry per transition, written in the same transaction
"""

__version__ = "1.0.0"
