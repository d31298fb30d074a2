"""Clients for the engine's external collaborators.

- Identity & Directory: users, role holders, department heads
- Request Intake: the flat data dictionary evaluated by routing rules
"""

from approvalflow.services.directory import (
    DirectoryUser,
    IdentityDirectory,
    InMemoryIdentityDirectory,
    HttpIdentityDirectory,
    DirectorySnapshot,
)
from approvalflow.services.intake import (
    RequestIntake,
    InMemoryRequestIntake,
    HttpRequestIntake,
)

__all__ = [
    "DirectoryUser",
    "IdentityDirectory",
    "InMemoryIdentityDirectory",
    "HttpIdentityDirectory",
    "DirectorySnapshot",
    "RequestIntake",
    "InMemoryRequestIntake",
    "HttpRequestIntake",
]
