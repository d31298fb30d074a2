"""Flow catalog API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from approvalflow.api.deps import get_db, require_administrator
from approvalflow.api.schemas.common import ActiveToggle
from approvalflow.api.schemas.flows import (
    CandidateResponse,
    FlowResponse,
    FlowValidationResponse,
    ResolvePreviewRequest,
    ResolvePreviewResponse,
)
from approvalflow.core.flows import FlowCatalog, flow_to_dict

router = APIRouter(prefix="/flows", tags=["flows"])


@router.get("", response_model=List[FlowResponse])
def list_flows(
    module_id: Optional[int] = Query(None),
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    """List flow templates, optionally for one module."""
    flows = FlowCatalog(db).list_flows(module_id, active_only=active_only)
    return [flow_to_dict(f) for f in flows]


@router.post("/resolve", response_model=ResolvePreviewResponse)
def preview_resolution(
    body: ResolvePreviewRequest,
    db: Session = Depends(get_db),
):
    """Show which flow a request would be routed to, without creating an instance."""
    resolution = FlowCatalog(db).preview_resolution(body.module_id, body.data)
    return ResolvePreviewResponse(
        flow_id=resolution.snapshot.flow_id,
        flow_name=resolution.snapshot.name,
        used_default=resolution.used_default,
        steps=[s.to_dict() for s in resolution.snapshot.steps],
        candidates=[
            CandidateResponse(
                flow_id=c.flow_id,
                flow_name=c.flow_name,
                match_policy=c.match_policy,
                matched=c.matched,
                rules=[
                    {**r.rule.to_dict(), "matched": r.matched, "reason": r.reason}
                    for r in c.rule_results
                ],
                error=c.error,
            )
            for c in resolution.candidates
        ],
    )


@router.get("/{flow_id}", response_model=FlowResponse)
def get_flow(flow_id: int, db: Session = Depends(get_db)):
    """Get a flow template with its rules and steps."""
    return flow_to_dict(FlowCatalog(db).get_flow(flow_id))


@router.get("/{flow_id}/validation", response_model=FlowValidationResponse)
def validate_flow(flow_id: int, db: Session = Depends(get_db)):
    """Report configuration problems in a flow template."""
    issues = FlowCatalog(db).validate(flow_id)
    return FlowValidationResponse(flow_id=flow_id, valid=not issues, issues=issues)


@router.patch("/{flow_id}/active", response_model=FlowResponse)
def set_flow_active(
    flow_id: int,
    body: ActiveToggle,
    actor_id: str = Depends(require_administrator),
    db: Session = Depends(get_db),
):
    """Activate or deactivate a flow template (administrators only)."""
    catalog = FlowCatalog(db)
    try:
        flow = catalog.set_flow_active(flow_id, body.is_active, actor_id=actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return flow_to_dict(catalog.get_flow(flow.id))
