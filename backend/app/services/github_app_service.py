"""
GitHub App installation directory.

Authenticates as the GitHub App (RS256 JWT), resolves which installation
serves a given account, lists the repositories an installation can reach,
mints short-lived installation tokens and opens pull requests.

Tokens are never cached: every clone or push asks for a fresh one.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import jwt

from ..config import config
from ..models.repository import (
    Installation, InstallationToken, RepositoryLocation, RepositoryRef
)
from .errors import ConfigurationError, GitHubAppError, InstallationNotFoundError

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
PAGE_SIZE = 100


class GitHubAppService:
    """Client for the GitHub App REST endpoints SecureBot needs."""

    # GitHub rejects app JWTs valid for more than 10 minutes
    JWT_TTL_SECONDS = 540
    JWT_CLOCK_DRIFT_SECONDS = 60

    def __init__(
        self,
        app_id: Optional[str] = None,
        private_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.app_id = app_id or config.get_github_app_id()
        self.private_key = private_key or config.get_github_private_key()
        self.api_url = (api_url or config.get_github_api_url()).rstrip("/")
        self.timeout = timeout or float(config.get_operation_timeout())
        self._transport = transport

        if not self.app_id or not self.private_key:
            raise ConfigurationError(
                "GitHub App credentials missing: set GITHUB_APP_ID and GITHUB_PRIVATE_KEY"
            )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _create_app_jwt(self) -> str:
        """Sign a short-lived JWT identifying the app itself."""
        now = int(time.time())
        payload = {
            "iat": now - self.JWT_CLOCK_DRIFT_SECONDS,
            "exp": now + self.JWT_TTL_SECONDS,
            "iss": str(self.app_id),
        }
        return jwt.encode(payload, self.private_key, algorithm="RS256")

    def _client(self, token: str, scheme: str) -> httpx.Client:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"{scheme} {token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "SecureBot",
        }
        return httpx.Client(
            base_url=self.api_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _app_client(self) -> httpx.Client:
        return self._client(self._create_app_jwt(), "Bearer")

    def _installation_client(self, installation_id: int) -> httpx.Client:
        token = self.get_installation_token(installation_id)
        return self._client(token.token, "token")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("message", response.text)
        except ValueError:
            detail = response.text
        raise GitHubAppError(
            f"Failed to {action}: GitHub API returned {response.status_code}: {detail}",
            status_code=response.status_code,
        )

    def _paginate(self, client: httpx.Client, path: str, action: str,
                  item_key: Optional[str] = None) -> List[Dict[str, Any]]:
        """Follow Link: rel="next" headers and flatten every page."""
        items: List[Dict[str, Any]] = []
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"per_page": PAGE_SIZE}
        while url:
            try:
                response = client.get(url, params=params)
            except httpx.HTTPError as e:
                raise GitHubAppError(f"Failed to {action}: {e}") from e
            self._check(response, action)
            body = response.json()
            items.extend(body.get(item_key, []) if item_key else body)
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query string
        return items

    # ------------------------------------------------------------------
    # Directory operations
    # ------------------------------------------------------------------

    def list_installations(self) -> List[Installation]:
        """All installations of this app."""
        with self._app_client() as client:
            raw = self._paginate(client, "/app/installations", "list installations")
        return [Installation.model_validate(item) for item in raw]

    def is_app_installed(self, username: str) -> bool:
        """True when an installation's account login matches ``username`` (case-insensitive)."""
        try:
            self.get_installation_by_username(username)
            return True
        except InstallationNotFoundError:
            return False

    def get_installation_by_username(self, username: str) -> Installation:
        wanted = (username or "").lower()
        for installation in self.list_installations():
            if installation.account.login.lower() == wanted:
                return installation
        raise InstallationNotFoundError(username)

    def get_installation_token(self, installation_id: int) -> InstallationToken:
        """Mint a fresh installation access token."""
        action = f"create access token for installation {installation_id}"
        with self._app_client() as client:
            try:
                response = client.post(f"/app/installations/{installation_id}/access_tokens")
            except httpx.HTTPError as e:
                raise GitHubAppError(f"Failed to {action}: {e}") from e
            self._check(response, action)
            body = response.json()

        expires_at = body.get("expires_at")
        return InstallationToken(
            installation_id=installation_id,
            token=body["token"],
            expires_at=datetime.fromisoformat(expires_at.replace("Z", "+00:00")) if expires_at else None,
        )

    def get_raw_repositories_for_installation(self, installation_id: int) -> List[Dict[str, Any]]:
        """Repository payloads exactly as GitHub returns them, all pages flattened."""
        with self._installation_client(installation_id) as client:
            return self._paginate(
                client, "/installation/repositories",
                f"list repositories for installation {installation_id}",
                item_key="repositories",
            )

    def get_repositories_for_installation(self, installation_id: int) -> List[RepositoryRef]:
        return [
            RepositoryRef.model_validate({**item, "installation_id": installation_id})
            for item in self.get_raw_repositories_for_installation(installation_id)
        ]

    def find_repository_by_id(self, repo_id) -> Optional[RepositoryLocation]:
        """
        Locate a repository across every installation.

        Walks installations × repositories; fine for one organisation's
        repositories, not meant for many tenants.
        """
        wanted = str(repo_id)
        for installation in self.list_installations():
            for repository in self.get_repositories_for_installation(installation.id):
                if str(repository.id) == wanted:
                    return RepositoryLocation(repository=repository, installation=installation)
        return None

    def create_pull_request(self, installation_id: int, owner: str, repo: str,
                            title: str, head: str, base: str, body: str) -> Dict[str, Any]:
        action = f"create pull request on {owner}/{repo}"
        with self._installation_client(installation_id) as client:
            try:
                response = client.post(
                    f"/repos/{owner}/{repo}/pulls",
                    json={"title": title, "head": head, "base": base, "body": body},
                )
            except httpx.HTTPError as e:
                raise GitHubAppError(f"Failed to {action}: {e}") from e
            self._check(response, action)
            pull_request = response.json()

        logger.info(f"📤 Opened pull request #{pull_request.get('number')} on {owner}/{repo}")
        return pull_request

    def get_installation_url(self) -> str:
        return config.get_installation_url()
