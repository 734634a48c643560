"""
Exception types raised by SecureBot services.

Services raise these with contextual messages; the API layer is the single
place that converts them into HTTP status codes and JSON error bodies.
"""

import re
from typing import Optional

_TOKEN_URL_RE = re.compile(r"x-access-token:[^@\s]+@")


def redact_token(text: str) -> str:
    """Hide installation tokens embedded in git URLs."""
    if not text:
        return text
    return _TOKEN_URL_RE.sub("x-access-token:***@", text)


class SecureBotError(Exception):
    """Base class for SecureBot errors."""
    pass


class ConfigurationError(SecureBotError):
    """Required configuration (e.g. GitHub App credentials) is missing."""
    pass


class InvalidRequestError(SecureBotError):
    """A request is missing required fields."""
    pass


class AppNotInstalledError(SecureBotError):
    """The GitHub App is not installed for the requesting account."""

    def __init__(self, username: str, install_url: str):
        super().__init__(f"SecureBot is not installed for {username}")
        self.username = username
        self.install_url = install_url


class GitHubAppError(SecureBotError):
    """A GitHub App API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InstallationNotFoundError(GitHubAppError):
    """No installation exists for the requested account."""

    def __init__(self, username: str):
        super().__init__(f"No installation found for user {username}", status_code=404)
        self.username = username


class RepositoryNotFoundError(SecureBotError):
    """The repository id is not accessible through any installation."""

    def __init__(self, repo_id):
        super().__init__(f"Repository with ID {repo_id} not found in accessible repositories")
        self.repo_id = repo_id


class GitCommandError(SecureBotError):
    """A git subprocess exited non-zero or timed out."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = redact_token(command)
        self.returncode = returncode
        self.stderr = redact_token((stderr or "").strip())
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"Command '{self.command}' failed with exit code {returncode}{detail}")


class WorkspaceError(SecureBotError):
    """Clone, branch, commit, push or pull request creation failed."""
    pass


class ScanError(SecureBotError):
    """The scanner could not complete."""
    pass


class FixError(SecureBotError):
    """The autofix engine could not complete."""
    pass


class OracleError(SecureBotError):
    """The rewriting oracle failed."""
    pass


class OracleRateLimitedError(OracleError):
    """The oracle rejected the call because of quota or rate limiting."""
    pass


class OracleUnavailableError(OracleError):
    """The oracle could not be initialised or reached."""
    pass


class AIConfigurationError(OracleError):
    """The oracle is missing required configuration (API key)."""
    pass


def is_rate_limit_message(message: str) -> bool:
    lowered = (message or "").lower()
    return "quota" in lowered or "rate limit" in lowered
