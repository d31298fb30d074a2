"""Resolve approver specs to the identities empowered to act."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from approvalflow.core.errors import InvalidApprover, NoDepartmentHead, NoSuperior
from approvalflow.services.directory import DirectoryUser, IdentityDirectory

from .specs import ApproverSpec, DepartmentHead, FixedUser, ImmediateSuperior, RoleHolders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedApprovers:
    """Identities eligible to act on a step, sorted for determinism."""
    user_ids: Tuple[str, ...]

    @property
    def approver_id(self) -> Optional[str]:
        """The sole eligible identity, or None when several may act."""
        return self.user_ids[0] if len(self.user_ids) == 1 else None

    def __contains__(self, user_id: str) -> bool:
        return user_id in self.user_ids


class ApproverResolver:
    """
    Maps a step's approver spec plus the requesting user to concrete ids.

    Every lookup goes to the directory; pass a ``DirectorySnapshot`` as the
    directory to share lookups across one operation.
    """

    def __init__(self, directory: IdentityDirectory):
        self.directory = directory

    def resolve(self, spec: ApproverSpec, requesting_user_id: str) -> ResolvedApprovers:
        """
        Resolve a spec.

        Raises:
            InvalidApprover: fixed user unknown or inactive, role without
                active holders, or the resolved identity is inactive
            NoSuperior: requester has no immediate superior
            NoDepartmentHead: requester has no department or it has no head
            DirectoryUnavailable: directory unreachable after retries
        """
        if isinstance(spec, FixedUser):
            return ResolvedApprovers((self._require_active(spec.user_id),))

        if isinstance(spec, RoleHolders):
            holders = self.directory.get_role_holders(spec.role_id)
            if not holders:
                raise InvalidApprover(f"Role {spec.role_id} has no active holders", approver_ref=spec.role_id)
            return ResolvedApprovers(tuple(sorted(holders)))

        if isinstance(spec, ImmediateSuperior):
            requester = self._requester(requesting_user_id)
            if not requester.immediate_superior_id:
                raise NoSuperior(requesting_user_id)
            return ResolvedApprovers((self._require_active(requester.immediate_superior_id),))

        if isinstance(spec, DepartmentHead):
            requester = self._requester(requesting_user_id)
            if not requester.department_id:
                raise NoDepartmentHead(requesting_user_id)
            head_id = self.directory.get_department_head(requester.department_id)
            if not head_id:
                raise NoDepartmentHead(requesting_user_id, requester.department_id)
            return ResolvedApprovers((self._require_active(head_id),))

        raise TypeError(f"Unsupported approver spec: {spec!r}")

    def _requester(self, user_id: str) -> DirectoryUser:
        user = self.directory.get_user(user_id)
        if user is None:
            raise InvalidApprover(f"Requesting user {user_id} is unknown to the directory", approver_ref=user_id)
        return user

    def _require_active(self, user_id: str) -> str:
        user = self.directory.get_user(user_id)
        if user is None:
            raise InvalidApprover(f"Approver {user_id} is unknown to the directory", approver_ref=user_id)
        if not user.active:
            raise InvalidApprover(f"Approver {user_id} is inactive", approver_ref=user_id)
        return user.id
