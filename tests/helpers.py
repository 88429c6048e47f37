"""Test doubles and sample data shared by the KYC test suites."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

from kyc_core.models.kyc import (
    CorporateEmployerProfile,
    IndividualEmployerProfile,
    LocalBusinessProfile,
    StudentProfile,
)
from kyc_core.services.notifier import StatusNotifier

STUDENT_ID = "student-1"
EMPLOYER_ID = "employer-1"
ADMIN_ID = "admin-1"


class FakeClock:
    """Deterministic clock: every call returns a time one second after the previous one."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


class RecordingNotifier(StatusNotifier):

    def __init__(self):
        self.emitted: List[Tuple[str, Dict[str, Any]]] = []
        self.notifications: List[Dict[str, Any]] = []

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        self.emitted.append((subject_id, payload))

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        self.notifications.append({
            "subject_id": subject_id,
            "type": type,
            "title": title,
            "message": message,
            "actor_id": actor_id,
        })


class FailingNotifier(StatusNotifier):

    def emit_status_change(self, subject_id: str, payload: Dict[str, Any]) -> None:
        raise RuntimeError("socket gateway down")

    def create_notification(self, subject_id: str, type: str, title: str, message: str, actor_id: str) -> None:
        raise RuntimeError("notification insert failed")


# ============================================================
# PROFILES
# ============================================================

def student_profile(**overrides: Any) -> StudentProfile:
    data = {
        "full_name": "Asha Verma",
        "phone": "9876543210",
        "email": "asha@example.com",
        "college": "IIT Bombay",
    }
    data.update(overrides)
    return StudentProfile(**data)


def individual_profile(**overrides: Any) -> IndividualEmployerProfile:
    data = {"full_name": "Ravi Kumar", "aadhaar_number": "123412341234"}
    data.update(overrides)
    return IndividualEmployerProfile(**data)


def corporate_profile(**overrides: Any) -> CorporateEmployerProfile:
    data = {"company_name": "Acme Pvt Ltd", "gst_number": "27AAACA1234A1Z5"}
    data.update(overrides)
    return CorporateEmployerProfile(**data)


def local_business_profile(**overrides: Any) -> LocalBusinessProfile:
    data = {
        "business_name": "Chai Corner",
        "owner_name": "Meena Shah",
        "owner_email": "meena@example.com",
        "owner_phone": "9123456789",
        "address": "12 MG Road",
    }
    data.update(overrides)
    return LocalBusinessProfile(**data)
