"""
Admin KYC Routes

GET /admin/kyc/pending - Review queue (pending, not suspended)
GET /admin/kyc/{subject_id}/status - Status, record and consistency report
PATCH /admin/kyc/{subject_id}/approve - Approve a pending submission
PATCH /admin/kyc/{subject_id}/reject - Reject a pending submission (reason required)
PATCH /admin/kyc/{subject_id}/suspend - Suspend an approved or pending subject
PATCH /admin/kyc/{subject_id}/reactivate - Lift a suspension
GET /admin/kyc/audit - Query the audit trail
POST /admin/kyc/reconcile - Run the reconciliation job now
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from kyc_core.api.deps import get_audit_log, get_engine, get_store
from kyc_core.api.routes.kyc_routes import status_response, transition_response
from kyc_core.core.auth import get_current_admin, get_request_context
from kyc_core.db.unit_of_work import VerificationStore
from kyc_core.models.kyc import AuditAction, RequestContext, SubjectType
from kyc_core.schemas.schemas import (
    AdminDecisionRequest,
    AdminRejectRequest,
    AdminStatusResponse,
    AuditQueryResponse,
    PendingQueueResponse,
    ReconcileRequest,
    ReconcileResponse,
    TransitionResponse,
)
from kyc_core.services.audit_log import AuditLog
from kyc_core.services.reconciliation import ReconciliationJob
from kyc_core.services.transition_engine import TransitionEngine

router = APIRouter(prefix="/admin/kyc", tags=["Admin KYC"])


@router.get("/pending", response_model=PendingQueueResponse)
async def pending_queue(
    subject_type: Optional[SubjectType] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
):
    records = engine.review_queue(subject_type=subject_type, limit=limit)
    return PendingQueueResponse(count=len(records), records=records)


@router.get("/audit", response_model=AuditQueryResponse)
async def query_audit(
    subject_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    limit: int = Query(50, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    audit_log: AuditLog = Depends(get_audit_log),
):
    """Newest first. Filters combine with AND."""
    entries = audit_log.query(subject_id=subject_id, actor_id=actor_id, action=action, limit=limit)
    return AuditQueryResponse(count=len(entries), entries=entries)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    data: Optional[ReconcileRequest] = None,
    admin: dict = Depends(get_current_admin),
    store: VerificationStore = Depends(get_store),
    engine: TransitionEngine = Depends(get_engine),
):
    data = data or ReconcileRequest()
    summary = ReconciliationJob(store, engine).run(create_indexes=data.create_indexes)
    return ReconcileResponse(success=summary.success, **summary.model_dump(
        include={
            "subjects_scanned", "records_found", "inconsistencies_found",
            "inconsistencies_repaired", "indexes_created", "errors", "audit_entry_id",
        }
    ))


@router.get("/{subject_id}/status", response_model=AdminStatusResponse)
async def subject_status(
    subject_id: str,
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
):
    view = engine.get_status(subject_id)
    return AdminStatusResponse(**status_response(view), record=view.record, consistency=view.consistency)


@router.patch("/{subject_id}/approve", response_model=TransitionResponse)
async def approve(
    subject_id: str,
    data: Optional[AdminDecisionRequest] = None,
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    reason = data.reason if data else None
    return transition_response(engine.approve(subject_id, admin["user_id"], reason=reason, context=context))


@router.patch("/{subject_id}/reject", response_model=TransitionResponse)
async def reject(
    subject_id: str,
    data: AdminRejectRequest,
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    return transition_response(engine.reject(subject_id, admin["user_id"], data.reason, context=context))


@router.patch("/{subject_id}/suspend", response_model=TransitionResponse)
async def suspend(
    subject_id: str,
    data: Optional[AdminDecisionRequest] = None,
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    reason = data.reason if data else None
    return transition_response(engine.suspend(subject_id, admin["user_id"], reason=reason, context=context))


@router.patch("/{subject_id}/reactivate", response_model=TransitionResponse)
async def reactivate(
    subject_id: str,
    data: Optional[AdminDecisionRequest] = None,
    admin: dict = Depends(get_current_admin),
    engine: TransitionEngine = Depends(get_engine),
    context: RequestContext = Depends(get_request_context),
):
    reason = data.reason if data else None
    return transition_response(engine.reactivate(subject_id, admin["user_id"], reason=reason, context=context))
