"""Error taxonomy for the approval flow engine.

Every failure surfaced by the engine is a subclass of ``ApprovalFlowError``
carrying a stable ``code`` and a ``category``, so callers can present a
precise message without parsing strings:

- configuration: a broken template or directory setup; never retried,
  reported to an administrator
- conflict: another transition committed first; caller decides on retry
- authorization: actor may not perform the action; never retried
- integration: directory or intake unreachable; retried at the boundary
- integrity: decision log and instance state disagree; instance is halted
- not_found / validation: lookups and request validation
"""

from typing import Any, Dict, Optional


class ErrorCategory:
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"
    AUTHORIZATION = "authorization"
    INTEGRATION = "integration"
    INTEGRITY = "integrity"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"


class ApprovalFlowError(Exception):
    """Base class for all engine errors."""

    code = "approval_flow_error"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "category": self.category,
            "detail": self.message,
            "context": {k: str(v) if v is not None else None for k, v in self.context.items()},
        }


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(ApprovalFlowError):
    code = "configuration_error"
    category = ErrorCategory.CONFIGURATION


class FlowNotFound(ConfigurationError):
    code = "flow_not_found"

    def __init__(self, module_id: int):
        super().__init__(
            f"No matching or default approval flow for module {module_id}",
            module_id=module_id,
        )
        self.module_id = module_id


class EmptyFlow(ConfigurationError):
    code = "empty_flow"

    def __init__(self, flow_id: int):
        super().__init__(f"Approval flow {flow_id} has no active steps", flow_id=flow_id)
        self.flow_id = flow_id


class InvalidFlowConfiguration(ConfigurationError):
    code = "invalid_flow_configuration"

    def __init__(self, message: str, flow_id: Optional[int] = None, **context: Any):
        super().__init__(message, flow_id=flow_id, **context)
        self.flow_id = flow_id


class InvalidApprover(ConfigurationError):
    code = "invalid_approver"

    def __init__(self, message: str, approver_ref: Optional[str] = None):
        super().__init__(message, approver_ref=approver_ref)
        self.approver_ref = approver_ref


class NoSuperior(ConfigurationError):
    code = "no_superior"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} has no immediate superior configured", user_id=user_id)
        self.user_id = user_id


class NoDepartmentHead(ConfigurationError):
    code = "no_department_head"

    def __init__(self, user_id: str, department_id: Optional[str] = None):
        super().__init__(
            f"No department head configured for user {user_id} (department {department_id})",
            user_id=user_id,
            department_id=department_id,
        )
        self.user_id = user_id
        self.department_id = department_id


# ---------------------------------------------------------------------------
# Concurrency, authorization, integration, integrity
# ---------------------------------------------------------------------------


class ConcurrencyConflict(ApprovalFlowError):
    code = "concurrency_conflict"
    category = ErrorCategory.CONFLICT


class AlreadyDecided(ConcurrencyConflict):
    code = "already_decided"

    def __init__(self, instance_id: Any, status: Optional[str] = None):
        super().__init__(
            f"Approval instance {instance_id} has already been decided ({status})",
            instance_id=instance_id,
            status=status,
        )
        self.instance_id = instance_id
        self.status = status


class AuthorizationError(ApprovalFlowError):
    code = "authorization_error"
    category = ErrorCategory.AUTHORIZATION


class Unauthorized(AuthorizationError):
    code = "unauthorized"

    def __init__(self, actor_id: Optional[str], reason: str = "Actor is not eligible for this action"):
        super().__init__(f"{reason}: {actor_id}", actor_id=actor_id)
        self.actor_id = actor_id


class IntegrationError(ApprovalFlowError):
    code = "integration_error"
    category = ErrorCategory.INTEGRATION


class DirectoryUnavailable(IntegrationError):
    code = "directory_unavailable"


class IntakeUnavailable(IntegrationError):
    code = "intake_unavailable"


class IntegrityViolation(ApprovalFlowError):
    code = "integrity_violation"
    category = ErrorCategory.INTEGRITY

    def __init__(self, instance_id: Any, reason: str):
        super().__init__(
            f"Approval instance {instance_id} requires manual reconciliation: {reason}",
            instance_id=instance_id,
        )
        self.instance_id = instance_id
        self.reason = reason


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class InstanceNotFound(ApprovalFlowError):
    code = "instance_not_found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, instance_id: Any):
        super().__init__(f"Approval instance {instance_id} not found", instance_id=instance_id)
        self.instance_id = instance_id


class ModuleNotFound(ApprovalFlowError):
    code = "module_not_found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, module_id: Any):
        super().__init__(f"Module {module_id} not found or inactive", module_id=module_id)
        self.module_id = module_id


class FlowDefinitionNotFound(ApprovalFlowError):
    code = "flow_definition_not_found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, flow_id: Any):
        super().__init__(f"Approval flow {flow_id} not found", flow_id=flow_id)
        self.flow_id = flow_id


class ExpiryNotDue(ApprovalFlowError):
    code = "expiry_not_due"
    category = ErrorCategory.VALIDATION

    def __init__(self, instance_id: Any):
        super().__init__(
            f"Approval instance {instance_id} has not reached its step deadline",
            instance_id=instance_id,
        )
        self.instance_id = instance_id


class RequestNotFound(ApprovalFlowError):
    code = "request_not_found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, request_id: Any):
        super().__init__(f"Request {request_id} not found in request intake", request_id=request_id)
        self.request_id = request_id
