"""Identity & Directory service clients.

The engine reads users, role holders and department heads through the
``IdentityDirectory`` protocol. ``HttpIdentityDirectory`` talks to the
directory over HTTP; ``InMemoryIdentityDirectory`` backs tests and demos.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, Optional, Protocol, Set

import httpx

from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import DirectoryUnavailable
from approvalflow.services.http import get_with_retries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    """A user profile as exposed by the directory."""
    id: str
    active: bool = True
    role_id: Optional[str] = None
    department_id: Optional[str] = None
    immediate_superior_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "DirectoryUser":
        return cls(
            id=str(data["id"]),
            active=bool(data.get("active", True)),
            role_id=_optional_str(data.get("role_id")),
            department_id=_optional_str(data.get("department_id")),
            immediate_superior_id=_optional_str(data.get("immediate_superior_id")),
        )


def _optional_str(value) -> Optional[str]:
    return str(value) if value is not None else None


class IdentityDirectory(Protocol):
    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        """Return the user, or None if the directory does not know it."""
        ...

    def get_role_holders(self, role_id: str) -> Set[str]:
        """Return the ids of active users holding a role."""
        ...

    def get_department_head(self, department_id: str) -> Optional[str]:
        """Return the id of the department head, if one is designated."""
        ...


class InMemoryIdentityDirectory:
    """Directory backed by dictionaries."""

    def __init__(self, users: Iterable[DirectoryUser] = (), department_heads: Optional[Dict[str, str]] = None):
        self._users: Dict[str, DirectoryUser] = {u.id: u for u in users}
        self._department_heads: Dict[str, str] = dict(department_heads or {})

    def add_user(self, user_id: str, **attributes) -> DirectoryUser:
        user = DirectoryUser(id=user_id, **attributes)
        self._users[user_id] = user
        return user

    def update_user(self, user_id: str, **attributes) -> DirectoryUser:
        user = replace(self._users[user_id], **attributes)
        self._users[user_id] = user
        return user

    def set_department_head(self, department_id: str, user_id: Optional[str]) -> None:
        if user_id is None:
            self._department_heads.pop(department_id, None)
        else:
            self._department_heads[department_id] = user_id

    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        return self._users.get(user_id)

    def get_role_holders(self, role_id: str) -> Set[str]:
        return {u.id for u in self._users.values() if u.role_id == role_id and u.active}

    def get_department_head(self, department_id: str) -> Optional[str]:
        return self._department_heads.get(department_id)


class DirectorySnapshot:
    """
    Read-through memo over a directory for the duration of one operation.

    Repeated lookups inside the same snapshot see consistent answers and
    hit the directory once. A snapshot must not outlive the operation that
    created it.
    """

    def __init__(self, directory: IdentityDirectory):
        self._directory = directory
        self._users: Dict[str, Optional[DirectoryUser]] = {}
        self._roles: Dict[str, Set[str]] = {}
        self._heads: Dict[str, Optional[str]] = {}

    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        if user_id not in self._users:
            self._users[user_id] = self._directory.get_user(user_id)
        return self._users[user_id]

    def get_role_holders(self, role_id: str) -> Set[str]:
        if role_id not in self._roles:
            self._roles[role_id] = set(self._directory.get_role_holders(role_id))
        return set(self._roles[role_id])

    def get_department_head(self, department_id: str) -> Optional[str]:
        if department_id not in self._heads:
            self._heads[department_id] = self._directory.get_department_head(department_id)
        return self._heads[department_id]


class HttpIdentityDirectory:
    """
    Directory client over HTTP.

    Endpoints (JSON):
        GET /users/{id}                  -> {id, active, role_id, department_id, immediate_superior_id}
        GET /roles/{id}/holders          -> {"user_ids": [...]}
        GET /departments/{id}/head       -> {"user_id": ... | null}

    A 404 on a user or department means "not configured", anything else
    unreachable is retried with backoff and then raised as
    ``DirectoryUnavailable``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(
            base_url=base_url or self.settings.directory_base_url,
            timeout=self.settings.integration_timeout,
        )
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def _get(self, url: str) -> httpx.Response:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        return get_with_retries(
            self._client,
            url,
            max_retries=self.settings.integration_max_retries,
            backoff_seconds=self.settings.integration_backoff_seconds,
            error_cls=DirectoryUnavailable,
            **kwargs,
        )

    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        response = self._get(f"/users/{user_id}")
        if response.status_code == 404:
            return None
        try:
            return DirectoryUser.from_dict(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise _malformed(response, e)

    def get_role_holders(self, role_id: str) -> Set[str]:
        response = self._get(f"/roles/{role_id}/holders")
        if response.status_code == 404:
            return set()
        try:
            return {str(user_id) for user_id in response.json().get("user_ids", [])}
        except (ValueError, AttributeError, TypeError) as e:
            raise _malformed(response, e)

    def get_department_head(self, department_id: str) -> Optional[str]:
        response = self._get(f"/departments/{department_id}/head")
        if response.status_code == 404:
            return None
        try:
            return _optional_str(response.json().get("user_id"))
        except (ValueError, AttributeError) as e:
            raise _malformed(response, e)


def _malformed(response: httpx.Response, error: Exception) -> DirectoryUnavailable:
    logger.warning(f"Malformed directory reply from {response.request.url}: {error!r}")
    return DirectoryUnavailable(
        f"Malformed directory reply from {response.request.url.path}", url=str(response.request.url)
    )
