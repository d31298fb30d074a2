"""Approval flow templates: snapshots, resolution and catalog administration."""

from .snapshot import FlowSnapshot, StepSnapshot, parse_rules
from .resolver import FlowResolver, Resolution, CandidateTrace
from .catalog import FlowCatalog, flow_to_dict, validate_flow

__all__ = [
    "FlowSnapshot",
    "StepSnapshot",
    "parse_rules",
    "FlowResolver",
    "Resolution",
    "CandidateTrace",
    "FlowCatalog",
    "validate_flow",
    "flow_to_dict",
]
