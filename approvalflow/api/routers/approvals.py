"""Approval instance API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from approvalflow.api.deps import get_actor_id, get_orchestrator
from approvalflow.api.schemas.approvals import (
    ActionRequest,
    DecisionResponse,
    InstanceListResponse,
    InstanceResponse,
    SubmitRequest,
)
from approvalflow.api.schemas.common import ErrorResponse
from approvalflow.core.approval import ApprovalAction, ApprovalOrchestrator
from approvalflow.core.errors import Unauthorized

router = APIRouter(
    prefix="/approvals",
    tags=["approvals"],
    responses={
        403: {"model": ErrorResponse, "description": "Actor may not perform this action"},
        404: {"model": ErrorResponse, "description": "Instance, module or request not found"},
        409: {"model": ErrorResponse, "description": "Instance already decided"},
        422: {"model": ErrorResponse, "description": "Flow configuration error"},
        502: {"model": ErrorResponse, "description": "Directory or intake unavailable"},
    },
)


@router.post("", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    body: SubmitRequest,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Resolve a flow for a submitted request and start its approval."""
    return orchestrator.submit(body.module_id, body.request_id, requested_by=actor_id)


@router.get("/pending", response_model=InstanceListResponse)
def list_pending(
    actor_id: Optional[str] = Query(None, description="Defaults to the calling actor; administrators only for others"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """List instances whose current step the actor may act on, oldest first."""
    items = orchestrator.list_pending(
        _queue_owner(actor_id, caller_id, orchestrator), limit=per_page, offset=(page - 1) * per_page
    )
    return InstanceListResponse(items=items, page=page, per_page=per_page)


@router.get("/requested", response_model=InstanceListResponse)
def list_requested(
    user_id: Optional[str] = Query(None, description="Defaults to the calling actor; administrators only for others"),
    state: Optional[str] = Query(None, pattern="^(pending|approved|rejected|cancelled|expired)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """List instances created by a requester, newest first."""
    items = orchestrator.list_requested(
        _queue_owner(user_id, caller_id, orchestrator),
        status=state,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return InstanceListResponse(items=items, page=page, per_page=per_page)


@router.get("/{instance_id}", response_model=InstanceResponse)
def get_instance(
    instance_id: UUID,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Get an approval instance with its decision log."""
    return orchestrator.get_instance(instance_id)


@router.get("/{instance_id}/decisions", response_model=List[DecisionResponse])
def get_decisions(
    instance_id: UUID,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Get the ordered decision log of an instance."""
    return orchestrator.get_decisions(instance_id)


@router.post("/{instance_id}/approve", response_model=InstanceResponse)
def approve(
    instance_id: UUID,
    action: Optional[ActionRequest] = None,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Approve the current step."""
    return orchestrator.act(instance_id, actor_id, ApprovalAction.APPROVE, comment=_comment(action))


@router.post("/{instance_id}/reject", response_model=InstanceResponse)
def reject(
    instance_id: UUID,
    action: Optional[ActionRequest] = None,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Reject the instance at the current step."""
    return orchestrator.act(instance_id, actor_id, ApprovalAction.REJECT, comment=_comment(action))


@router.post("/{instance_id}/cancel", response_model=InstanceResponse)
def cancel(
    instance_id: UUID,
    action: Optional[ActionRequest] = None,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Cancel a pending instance (requester or administrator)."""
    return orchestrator.cancel(instance_id, actor_id, comment=_comment(action))


@router.post("/{instance_id}/reconcile", response_model=InstanceResponse)
def reconcile(
    instance_id: UUID,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
):
    """Clear the halted flag of an instance whose log and state agree again."""
    return orchestrator.reconcile(instance_id, actor_id)


def _comment(action: Optional[ActionRequest]) -> Optional[str]:
    return action.comment if action else None


def _queue_owner(requested: Optional[str], caller_id: str, orchestrator: ApprovalOrchestrator) -> str:
    """Only administrators may read another user's queue."""
    if requested and requested != caller_id and not orchestrator.is_administrator(caller_id):
        raise Unauthorized(caller_id, f"Only an administrator may list instances of {requested}")
    return requested or caller_id
