"""
KYC Routes (subject side)

POST /kyc/submit - Submit or resubmit KYC details
GET /kyc/status - Get own verification status
DELETE /kyc/submission - Withdraw a pending or rejected submission
PUT /kyc/employer-type - Switch employer category (archives the current submission)

Handlers are thin: authenticate, call the transition engine, shape the
response. KycError subclasses are turned into HTTP errors by the app-level
exception handler.
"""

from fastapi import APIRouter, Depends

from kyc_core.api.deps import get_engine
from kyc_core.core.auth import get_current_user, get_request_context
from kyc_core.models.kyc import RequestContext, StatusView, TransitionResult
from kyc_core.schemas.schemas import (
    EmployerTypeChangeRequest,
    KycStatusResponse,
    KycSubmitRequest,
    TransitionResponse,
)
from kyc_core.services.transition_engine import TransitionEngine

router = APIRouter(prefix="/kyc", tags=["KYC"])


def transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        subject_id=result.account.subject_id,
        kyc_status=result.account.kyc_status,
        is_verified=result.account.is_verified,
        message=result.message,
        audit_entry_id=result.audit_entry.id,
        status=result.status,
    )


def status_response(view: StatusView) -> dict:
    """Fields shared by the subject and admin status responses."""
    return {
        "subject_id": view.subject_id,
        "subject_type": view.subject_type,
        "kyc_status": view.kyc_status,
        "is_verified": view.status.is_verified,
        "submitted_at": view.status.submitted_at,
        "verified_at": view.status.verified_at,
        "rejected_at": view.status.rejected_at,
        "rejection_reason": view.status.rejection_reason,
        "can_resubmit": view.status.can_resubmit,
        "message": view.message,
    }


@router.post("/submit", response_model=TransitionResponse, status_code=201)
async def submit_kyc(
    data: KycSubmitRequest,
    user: dict = Depends(get_current_user),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    """
    Submit KYC details for review.

    Allowed when nothing was submitted yet or after a rejection.
    """
    result = engine.submit(user["user_id"], data.profile, context=context)
    return transition_response(result)


@router.get("/status", response_model=KycStatusResponse)
async def get_kyc_status(user: dict = Depends(get_current_user), engine: TransitionEngine = Depends(get_engine)):
    """Canonical status, computed from the verification record."""
    return KycStatusResponse(**status_response(engine.get_status(user["user_id"])))


@router.delete("/submission", response_model=TransitionResponse)
async def withdraw_kyc(
    user: dict = Depends(get_current_user),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    return transition_response(engine.withdraw(user["user_id"], context=context))


@router.put("/employer-type", response_model=TransitionResponse)
async def change_employer_type(
    data: EmployerTypeChangeRequest,
    user: dict = Depends(get_current_user),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    """Only possible before submitting or after a rejection."""
    result = engine.change_employer_type(user["user_id"], data.employer_type, context=context)
    return transition_response(result)
