from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from approvalflow.core.approval import ApprovalOrchestrator
from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import Unauthorized
from approvalflow.db.session import SessionLocal, init_engine
from approvalflow.services.directory import HttpIdentityDirectory, IdentityDirectory
from approvalflow.services.intake import HttpRequestIntake, RequestIntake


def get_db() -> Generator:
    """Database session dependency."""
    init_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_directory() -> IdentityDirectory:
    """Identity & Directory client, shared across requests."""
    return HttpIdentityDirectory(settings=get_settings())


@lru_cache()
def get_intake() -> RequestIntake:
    """Request Intake client, shared across requests."""
    return HttpRequestIntake(settings=get_settings())


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    """Actor identity asserted by the upstream gateway."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )
    return x_actor_id


def get_orchestrator(
    db: Session = Depends(get_db),
    directory: IdentityDirectory = Depends(get_directory),
    intake: RequestIntake = Depends(get_intake),
    settings: Settings = Depends(get_settings),
) -> ApprovalOrchestrator:
    return ApprovalOrchestrator(db, directory, intake, settings=settings)


def require_administrator(
    actor_id: str = Depends(get_actor_id),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
) -> str:
    """Actor identity of a caller holding an administrator role."""
    if not orchestrator.is_administrator(actor_id):
        raise Unauthorized(actor_id, "Only an administrator may change the flow catalog")
    return actor_id
