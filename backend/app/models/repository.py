"""
GitHub-side data models: installations, repositories, tokens and pull requests.

These mirror the subset of the GitHub REST payloads SecureBot relies on.
Unknown fields are kept (``extra="allow"``) so listings can be echoed back
to API clients without losing information.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class InstallationAccount(BaseModel):
    """Account (user or organization) a GitHub App is installed on."""

    model_config = ConfigDict(extra="allow")

    login: str
    id: Optional[int] = None
    type: Optional[str] = None


class Installation(BaseModel):
    """A GitHub App installation."""

    model_config = ConfigDict(extra="allow")

    id: int
    account: InstallationAccount


class RepositoryRef(BaseModel):
    """Immutable identity of a repository reachable through an installation."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: int
    name: str
    full_name: str
    clone_url: str
    default_branch: Optional[str] = "main"
    installation_id: Optional[int] = None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


class InstallationToken(BaseModel):
    """Short-lived installation access token. Never persisted."""

    installation_id: int
    token: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(self.expires_at.tzinfo)
        return now >= self.expires_at


class RepositoryLocation(BaseModel):
    """Where a repository was found: the repository plus the installation that grants access."""

    repository: RepositoryRef
    installation: Installation


class PullRequestRecord(BaseModel):
    """Read-only reference to a pull request opened by SecureBot."""

    id: Optional[int] = None
    number: int
    title: str
    html_url: str
    branch: str
    state: str = "open"

    @property
    def url(self) -> str:
        return self.html_url


class CloneResult(BaseModel):
    """Outcome of preparing a local workspace for a repository."""

    repository: RepositoryRef
    installation: Installation
    local_path: str
    action: str  # "cloned" | "updated"
    cloned_at: Optional[datetime] = None


class CommitResult(BaseModel):
    """Outcome of staging, committing and pushing workspace changes."""

    has_changes: bool
    message: str
    branch: Optional[str] = None


class ClonedRepository(BaseModel):
    """Diagnostic view of a workspace directory on disk."""

    name: str
    path: str
    stats: Dict[str, Any] = Field(default_factory=dict)
