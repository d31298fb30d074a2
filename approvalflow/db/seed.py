"""Catalog seeding for the approval flow engine.

Loads modules and their flow templates from a YAML file::

    modules:
      - name: purchasing
        flows:
          - name: Large purchases
            match_policy: ALL
            timeout_seconds: 172800
            rules:
              - {field: amount, operator: ">", value: "10000"}
            steps:
              - {step_order: 1, approver_type: immediate_superior}
              - {step_order: 2, approver_type: role, approver_ref: finance}
          - name: Standard
            is_default: true
            steps:
              - {step_order: 1, approver_type: department_head}

Seeding is idempotent by name: existing modules and flows are returned
untouched, so edits to a seeded template are never overwritten.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from sqlalchemy.orm import Session

from approvalflow.common.logger import setup_logger
from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import InvalidFlowConfiguration
from approvalflow.core.flows import FlowCatalog
from approvalflow.db.models import ApprovalFlow, ApprovalFlowRule, ApprovalFlowStep, Module
from approvalflow.db.session import SessionLocal, init_engine

logger = logging.getLogger(__name__)


def load_catalog(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a catalog file.

    Raises:
        InvalidFlowConfiguration: the file is not a mapping with a ``modules`` list
    """
    with open(path, "r", encoding="utf-8") as f:
        catalog = yaml.safe_load(f) or {}

    if not isinstance(catalog, dict) or not isinstance(catalog.get("modules", []), list):
        raise InvalidFlowConfiguration(f"Catalog {path} must be a mapping with a 'modules' list")
    return catalog


def seed_module(db: Session, name: str, *, is_active: bool = True) -> Module:
    """Create a module unless one with this name exists."""
    existing = get_module_by_name(db, name)
    if existing:
        return existing

    module = Module(name=name, is_active=is_active)
    db.add(module)
    db.flush()
    return module


def seed_flow(db: Session, module: Module, spec: Dict[str, Any]) -> ApprovalFlow:
    """
    Create a flow with its rules and steps unless the module already has
    a flow with this name.
    """
    existing = db.query(ApprovalFlow).filter(
        ApprovalFlow.module_id == module.id,
        ApprovalFlow.name == spec["name"],
    ).first()
    if existing:
        return existing

    flow = ApprovalFlow(
        module_id=module.id,
        name=spec["name"],
        description=spec.get("description"),
        match_policy=str(spec.get("match_policy", "ALL")).upper(),
        is_default=bool(spec.get("is_default", False)),
        is_active=bool(spec.get("is_active", True)),
        timeout_seconds=spec.get("timeout_seconds"),
    )
    for order, rule in enumerate(spec.get("rules") or []):
        flow.rules.append(ApprovalFlowRule(
            field=rule["field"],
            operator=str(rule["operator"]),
            value=_rule_value(rule["value"]),
            order=rule.get("order", order),
        ))
    for position, step in enumerate(spec.get("steps") or [], start=1):
        ref = step.get("approver_ref")
        flow.steps.append(ApprovalFlowStep(
            step_order=step.get("step_order", position),
            approver_type=step["approver_type"],
            approver_ref=str(ref) if ref is not None else None,
            is_active=bool(step.get("is_active", True)),
        ))

    db.add(flow)
    db.flush()
    return flow


def seed_catalog(db: Session, catalog: Dict[str, Any]) -> List[Module]:
    """
    Seed every module and flow in a loaded catalog.

    Flushes only; the caller commits.

    Returns:
        The seeded (or pre-existing) modules

    Raises:
        InvalidFlowConfiguration: a module ends up with more than one
            active default flow
    """
    flows = FlowCatalog(db)
    modules = []
    for module_spec in catalog.get("modules", []):
        module = seed_module(db, module_spec["name"], is_active=module_spec.get("is_active", True))
        for flow_spec in module_spec.get("flows") or []:
            seed_flow(db, module, flow_spec)
        flows.ensure_single_default(module.id)
        modules.append(module)

    logger.info(f"Seeded catalog with {len(modules)} module(s)")
    return modules


def get_module_by_name(db: Session, name: str) -> Optional[Module]:
    """Get a module by name."""
    return db.query(Module).filter(Module.name == name).first()


def _rule_value(value: Any) -> str:
    # YAML lists are accepted for IN / BETWEEN and stored comma-separated
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def main(path: Union[str, Path], settings: Optional[Settings] = None) -> List[str]:
    """
    Seed a catalog file into the configured database and commit.

    Returns:
        Names of the seeded modules
    """
    settings = settings or get_settings()
    setup_logger(settings, component="seed")
    init_engine(settings.database_url)
    db = SessionLocal()
    try:
        modules = seed_catalog(db, load_catalog(path))
        db.commit()
        for module in modules:
            logger.info(f"Module {module.name} (ID: {module.id}) has {len(module.flows)} flow(s)")
        return [module.name for module in modules]
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# CLI script for seeding
if __name__ == "__main__":
    import sys

    if len(sys.argv) != 2:
        sys.exit("usage: python -m approvalflow.db.seed CATALOG.yaml")
    main(sys.argv[1])
