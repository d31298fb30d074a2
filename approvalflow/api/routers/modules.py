"""Module API endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from approvalflow.api.deps import get_db, require_administrator
from approvalflow.api.schemas.common import ActiveToggle
from approvalflow.api.schemas.flows import ModuleResponse
from approvalflow.core.flows import FlowCatalog

router = APIRouter(prefix="/modules", tags=["modules"])


@router.get("", response_model=List[ModuleResponse])
def list_modules(db: Session = Depends(get_db)):
    return [ModuleResponse.model_validate(m) for m in FlowCatalog(db).list_modules()]


@router.patch("/{module_id}/active", response_model=ModuleResponse)
def set_module_active(
    module_id: int,
    body: ActiveToggle,
    actor_id: str = Depends(require_administrator),
    db: Session = Depends(get_db),
):
    """Activate or deactivate a module (administrators only). Inactive modules accept no submissions."""
    catalog = FlowCatalog(db)
    try:
        module = catalog.set_module_active(module_id, body.is_active, actor_id=actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return ModuleResponse.model_validate(module)
