"""
Workspace manager: the on-disk cache of cloned repositories.

Workspaces live at ``<repos_dir>/<owner>/<name>`` so repositories with the
same name under different owners never share a directory. Installation
tokens are only ever inlined in the URL argument of a single clone, pull or
push; the ``origin`` remote stored on disk is the token-free clone URL.
"""

import logging
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..config import config
from ..models.fix import FixReport
from ..models.repository import (
    CloneResult, ClonedRepository, CommitResult, Installation, PullRequestRecord, RepositoryRef
)
from ..models.scan_log import RunStatus
from .errors import GitCommandError, RepositoryNotFoundError, SecureBotError, WorkspaceError
from .git_runner import run_git
from .github_app_service import GitHubAppService
from .scan_log_service import RunContext

logger = logging.getLogger(__name__)

BOT_NAME = "SecureBot"
BOT_EMAIL = "securebot@automated.fix"
DEFAULT_COMMIT_MESSAGE = "🔒 SecureBot: Fix security vulnerabilities"
PULL_REQUEST_TITLE = "🔒 SecureBot: Automated Security Fixes"
BACKUP_PATHSPEC = ":(exclude)*.backup_*"


def new_fix_branch_name() -> str:
    return f"securebot-fixes-{int(time.time() * 1000)}"


def authenticated_url(url: str, token: str) -> str:
    """Embed an installation token as x-access-token credentials."""
    return url.replace("https://", f"https://x-access-token:{token}@", 1)


class RepositoryService:
    """Clone, update, branch, commit, push and open pull requests."""

    def __init__(self, github_app_service: GitHubAppService, repos_dir: Union[str, Path, None] = None):
        self.github_app_service = github_app_service
        self.repos_dir = Path(repos_dir or config.get_repos_dir()).resolve()
        self.repos_dir.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, key) -> threading.Lock:
        """Per-repository lock serialising every workspace operation on it."""
        key = str(key)
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def workspace_path(self, repository: RepositoryRef) -> Path:
        owner, _, name = repository.full_name.partition("/")
        return self.repos_dir / owner / (name or repository.name)

    # ------------------------------------------------------------------
    # Clone / update
    # ------------------------------------------------------------------

    def clone_repository(self, repo_id, ctx: Optional[RunContext] = None) -> CloneResult:
        """
        Make a local workspace for ``repo_id`` available.

        An existing directory is reused and fast-forwarded (best-effort);
        otherwise the repository is cloned with a fresh installation token.
        """
        location = self.github_app_service.find_repository_by_id(repo_id)
        if location is None:
            error = RepositoryNotFoundError(repo_id)
            raise WorkspaceError(f"Failed to clone repository: {error}") from error

        repository, installation = location.repository, location.installation
        repo_path = self.workspace_path(repository)

        try:
            if repo_path.exists():
                logger.info(f"Repository {repository.full_name} already exists, pulling latest changes...")
                if ctx:
                    ctx.emit(RunStatus.CLONING,
                             f"Repository {repository.name} already exists, pulling latest changes")
                self.pull_latest_changes(repo_path, repository, installation, ctx)
                if ctx:
                    ctx.emit(RunStatus.CLONING, f"Repository {repository.name} updated successfully")
                return CloneResult(
                    repository=repository,
                    installation=installation,
                    local_path=str(repo_path),
                    action="updated",
                )

            token = self.github_app_service.get_installation_token(installation.id)
            clone_url = authenticated_url(repository.clone_url, token.token)

            logger.info(f"Cloning repository: {repository.full_name}")
            if ctx:
                ctx.emit(RunStatus.CLONING, f"Started cloning repository: {repository.full_name}")

            repo_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                run_git(["clone", clone_url, str(repo_path)], cwd=self.repos_dir)
            except GitCommandError:
                # A half-written clone would be mistaken for a cached workspace next time
                shutil.rmtree(repo_path, ignore_errors=True)
                raise
            run_git(["remote", "set-url", "origin", repository.clone_url], cwd=repo_path)

            if ctx:
                ctx.emit(RunStatus.CLONING, f"Successfully cloned repository: {repository.full_name}")
            return CloneResult(
                repository=repository,
                installation=installation,
                local_path=str(repo_path),
                action="cloned",
                cloned_at=datetime.now(),
            )
        except SecureBotError as e:
            raise WorkspaceError(f"Failed to clone repository: {e}") from e

    def pull_latest_changes(self, repo_path: Path, repository: RepositoryRef,
                            installation: Installation, ctx: Optional[RunContext] = None) -> bool:
        """
        Pull the current branch from the remote.

        Failures are non-fatal: the run continues with the code already on disk.
        """
        try:
            branch = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo_path).stdout.strip()
            token = self.github_app_service.get_installation_token(installation.id)
            run_git(["pull", authenticated_url(repository.clone_url, token.token), branch], cwd=repo_path)
            logger.info(f"Updated repository at {repo_path}")
            return True
        except SecureBotError as e:
            logger.warning(f"⚠️ Failed to pull latest changes for {repository.full_name}, using cached copy: {e}")
            if ctx:
                ctx.emit(RunStatus.CLONING, f"Could not pull latest changes, scanning cached copy: {e}")
            return False

    # ------------------------------------------------------------------
    # Branch / commit / push
    # ------------------------------------------------------------------

    def create_fix_branch(self, local_path: Union[str, Path], branch_name: Optional[str] = None) -> str:
        """Check out the default branch (main, then master) and branch off it."""
        branch_name = branch_name or new_fix_branch_name()
        try:
            try:
                run_git(["checkout", "main"], cwd=local_path)
            except GitCommandError:
                run_git(["checkout", "master"], cwd=local_path)

            run_git(["checkout", "-b", branch_name], cwd=local_path)
            logger.info(f"🌿 Created branch {branch_name}")
            return branch_name
        except GitCommandError as e:
            raise WorkspaceError(f"Failed to create fix branch: {e}") from e

    def _push_url(self, full_name: str, token: str) -> str:
        return authenticated_url(f"https://github.com/{full_name}.git", token)

    def commit_and_push_changes(
        self,
        local_path: Union[str, Path],
        branch_name: str,
        installation_id: int,
        full_name: str,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ) -> CommitResult:
        """
        Stage everything except backup files and push it on ``branch_name``.

        Returns ``has_changes=False`` without committing when nothing is staged.
        """
        try:
            for key, value in (("user.name", BOT_NAME), ("user.email", BOT_EMAIL)):
                try:
                    run_git(["config", key, value], cwd=local_path)
                except GitCommandError as e:
                    logger.debug(f"git config {key} failed (non-fatal): {e}")

            run_git(["add", "-A", "--", ".", BACKUP_PATHSPEC], cwd=local_path)

            diff = run_git(["diff", "--staged", "--quiet"], cwd=local_path, check=False)
            if diff.returncode == 0:
                return CommitResult(has_changes=False, message="No changes to commit")

            run_git(["commit", "-m", commit_message], cwd=local_path)

            token = self.github_app_service.get_installation_token(installation_id)
            run_git(["push", self._push_url(full_name, token.token), branch_name], cwd=local_path)
            logger.info(f"📤 Pushed {branch_name} to {full_name}")

            return CommitResult(
                has_changes=True,
                message="Changes committed and pushed successfully",
                branch=branch_name,
            )
        except SecureBotError as e:
            raise WorkspaceError(f"Failed to commit and push changes: {e}") from e

    # ------------------------------------------------------------------
    # Pull request
    # ------------------------------------------------------------------

    def create_pull_request(self, repository: RepositoryRef, installation: Installation,
                            branch_name: str, fix_report: FixReport) -> PullRequestRecord:
        owner, _, repo = repository.full_name.partition("/")
        try:
            raw = self.github_app_service.create_pull_request(
                installation.id,
                owner,
                repo,
                title=PULL_REQUEST_TITLE,
                head=branch_name,
                base=repository.default_branch or "main",
                body=self.generate_pull_request_body(fix_report),
            )
        except SecureBotError as e:
            raise WorkspaceError(f"Failed to create pull request: {e}") from e

        return PullRequestRecord(
            id=raw.get("id"),
            number=raw["number"],
            title=raw.get("title", PULL_REQUEST_TITLE),
            html_url=raw.get("html_url", ""),
            branch=branch_name,
            state=raw.get("state", "open"),
        )

    @staticmethod
    def generate_pull_request_body(fix_report: FixReport) -> str:
        summary = fix_report.summary
        lines = [
            "## 🔒 SecureBot Automated Security Fixes",
            "",
            "This pull request contains automated security fixes generated by SecureBot.",
            "",
            "### 📊 Summary",
            f"- **Total Issues Fixed**: {summary.successful}",
            f"- **Failed Fixes**: {summary.failed}",
            f"- **Skipped Files**: {summary.skipped}",
            f"- **Success Rate**: {summary.success_rate}",
            "",
        ]

        if fix_report.applied_fixes:
            lines += ["### 🛠️ Applied Fixes", ""]
            for index, fix in enumerate(fix_report.applied_fixes, start=1):
                lines += [
                    f"#### {index}. {fix.file_name}",
                    f"- **Issue**: {fix.issue}",
                    f"- **Status**: {fix.status.value}",
                    f"- **Explanation**: {fix.explanation}",
                ]
                if fix.changes:
                    lines.append(
                        f"- **Size Change**: {fix.changes.original_size} → {fix.changes.fixed_size} characters"
                    )
                lines.append("")

        lines += [
            "### ⚠️ Important Notes",
            "- All original files have been backed up with timestamps",
            "- Please review all changes before merging",
            "- Test your application thoroughly after applying these fixes",
            "- Some fixes may require additional configuration or environment updates",
            "",
            "### 🤖 About SecureBot",
            "SecureBot is an automated security analysis and fixing tool that helps identify "
            "and resolve common security vulnerabilities in your codebase.",
            "",
            "---",
            "*This pull request was automatically generated by SecureBot*",
        ]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_cloned_repositories(self) -> List[ClonedRepository]:
        """List ``owner/name`` workspaces currently on disk."""
        try:
            if not self.repos_dir.exists():
                return []

            cloned = []
            for owner_dir in sorted(p for p in self.repos_dir.iterdir() if p.is_dir()):
                for repo_dir in sorted(p for p in owner_dir.iterdir() if p.is_dir()):
                    stat = repo_dir.stat()
                    cloned.append(ClonedRepository(
                        name=f"{owner_dir.name}/{repo_dir.name}",
                        path=str(repo_dir),
                        stats={
                            "size": stat.st_size,
                            "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
                            "created": datetime.fromtimestamp(stat.st_ctime).isoformat(),
                        },
                    ))
            return cloned
        except OSError as e:
            raise WorkspaceError(f"Failed to get cloned repositories: {e}") from e
