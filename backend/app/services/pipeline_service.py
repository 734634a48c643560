"""
Pipeline orchestrator.

Sequences one run end to end:

    cloning → scanning → scanned → [fixing → creating_pr] → completed
                                   (any step) → failed

Each run gets a fresh RunContext from the ScanLogStore, which is what
``/scan/logs`` shows while the run is in flight. Runs against the same
repository are serialised by the workspace manager's per-repository lock.
Errors are logged as the run's terminal ``failed`` entry and re-raised for
the API layer to turn into a status code.
"""

import logging
from typing import Any, Dict, Optional

from ..models.scan_log import RunStatus
from .autofix_service import AutofixService
from .errors import AppNotInstalledError, InvalidRequestError
from .github_app_service import GitHubAppService
from .repository_service import RepositoryService, new_fix_branch_name
from .scan_log_service import RunContext, ScanLogStore
from .security_scanner import SecurityScanner

logger = logging.getLogger(__name__)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _repository_summary(clone_result, include_path: bool = True) -> Dict[str, Any]:
    repository = clone_result.repository
    summary = {
        "id": repository.id,
        "name": repository.name,
        "full_name": repository.full_name,
    }
    if include_path:
        summary["local_path"] = clone_result.local_path
    return summary


def build_commit_message(fix_report) -> str:
    applied = fix_report.applied_fixes
    return (
        f"🔒 SecureBot: Fix {len(applied)} security vulnerabilities\n"
        f"\n"
        f"- Fixed {fix_report.summary.successful} security issues\n"
        f"- Success rate: {fix_report.summary.success_rate}\n"
        f"- Issues addressed: {', '.join(f.issue for f in applied)}\n"
        f"\n"
        f"Automated security fixes by SecureBot"
    )


class SecureBotPipeline:
    """Installation lookups plus the scan and fix-and-PR runs."""

    def __init__(
        self,
        github_app_service: GitHubAppService,
        repository_service: RepositoryService,
        scanner: SecurityScanner,
        autofix_service: AutofixService,
        log_store: Optional[ScanLogStore] = None,
    ):
        self.github_app_service = github_app_service
        self.repository_service = repository_service
        self.scanner = scanner
        self.autofix_service = autofix_service
        self.log_store = log_store or ScanLogStore()

    # ------------------------------------------------------------------
    # Installation lookups
    # ------------------------------------------------------------------

    def _not_installed(self, username: str) -> AppNotInstalledError:
        return AppNotInstalledError(username, self.github_app_service.get_installation_url())

    def installation_status(self, username: str) -> Dict[str, Any]:
        if not username:
            raise InvalidRequestError("Username is required")

        if not self.github_app_service.is_app_installed(username):
            raise self._not_installed(username)

        installation = self.github_app_service.get_installation_by_username(username)
        repositories = self.github_app_service.get_raw_repositories_for_installation(installation.id)
        return {
            "success": True,
            "installed": True,
            "installation": {"id": installation.id, "account": _dump(installation.account)},
            "repositories": repositories,
            "repository_count": len(repositories),
        }

    def user_repositories(self, username: str) -> Dict[str, Any]:
        status = self.installation_status(username)
        formatted = [
            {
                "id": repo.get("id"),
                "name": repo.get("name"),
                "full_name": repo.get("full_name"),
                "description": repo.get("description"),
                "private": repo.get("private"),
                "language": repo.get("language"),
                "html_url": repo.get("html_url"),
                "clone_url": repo.get("clone_url"),
                "ssh_url": repo.get("ssh_url"),
                "updated_at": repo.get("updated_at"),
                "created_at": repo.get("created_at"),
                "size": repo.get("size"),
                "stargazers_count": repo.get("stargazers_count"),
                "forks_count": repo.get("forks_count"),
                "default_branch": repo.get("default_branch"),
                # Scan history is not persisted yet
                "security_status": {
                    "scanned": False,
                    "last_scan": None,
                    "issues_found": 0,
                    "protection_enabled": True,
                },
            }
            for repo in status["repositories"]
        ]
        return {
            "success": True,
            "installed": True,
            "username": username,
            "installation": status["installation"],
            "repositories": formatted,
            "repository_count": len(formatted),
        }

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _validate(self, ctx: RunContext, repo_id, username) -> None:
        if not repo_id or not username:
            ctx.emit(RunStatus.FAILED, "Repository ID and username are required")
            raise InvalidRequestError("Repository ID and username are required")

        if not self.github_app_service.is_app_installed(username):
            ctx.emit(RunStatus.FAILED, "GitHub App not installed")
            raise self._not_installed(username)

    def scan(self, repo_id, username: str) -> Dict[str, Any]:
        """Clone or update the repository and scan it."""
        ctx = self.log_store.start_run(repo_id, username)
        try:
            self._validate(ctx, repo_id, username)
            with self.repository_service.lock_for(repo_id):
                logger.info(f"🔄 Cloning repository with ID: {repo_id}")
                ctx.emit(RunStatus.CLONING, "Cloning repository")
                clone_result = self.repository_service.clone_repository(repo_id, ctx)

                logger.info(f"🔍 Scanning repository: {clone_result.repository.full_name}")
                ctx.emit(RunStatus.SCANNING, "Starting security scan")
                scan_results = self.scanner.scan_repository(clone_result.local_path, ctx)

            ctx.emit(RunStatus.COMPLETED, "Repository scanned successfully")
            return {
                "success": True,
                "message": "Repository scanned successfully",
                "repository": _repository_summary(clone_result),
                "scan_results": _dump(scan_results),
                "clone_action": clone_result.action,
            }
        except (InvalidRequestError, AppNotInstalledError):
            raise
        except Exception as e:
            logger.error(f"❌ Error scanning repository {repo_id}: {e}")
            ctx.emit(RunStatus.FAILED, str(e))
            raise

    def fix(self, repo_id, username: str) -> Dict[str, Any]:
        """Scan, fix, commit, push and open a pull request."""
        ctx = self.log_store.start_run(repo_id, username)
        try:
            self._validate(ctx, repo_id, username)
            with self.repository_service.lock_for(repo_id):
                return self._fix_locked(repo_id, ctx)
        except (InvalidRequestError, AppNotInstalledError):
            raise
        except Exception as e:
            logger.error(f"❌ Error fixing repository {repo_id} and creating PR: {e}")
            ctx.emit(RunStatus.FAILED, str(e))
            raise

    def _fix_locked(self, repo_id, ctx: RunContext) -> Dict[str, Any]:
        logger.info(f"🔄 Preparing repository with ID: {repo_id}")
        ctx.emit(RunStatus.CLONING, "Cloning repository")
        clone_result = self.repository_service.clone_repository(repo_id, ctx)
        repository, installation = clone_result.repository, clone_result.installation

        logger.info(f"🔍 Scanning repository: {repository.full_name}")
        ctx.emit(RunStatus.SCANNING, "Starting security scan")
        scan_results = self.scanner.scan_repository(clone_result.local_path, ctx)

        if not scan_results.issues:
            ctx.emit(RunStatus.COMPLETED, "No security issues found")
            return {
                "success": True,
                "message": "No security issues found",
                "repository": _repository_summary(clone_result, include_path=False),
                "scan_results": _dump(scan_results),
                "fix_results": None,
                "pull_request": None,
            }

        logger.info(f"🔧 Fixing {len(scan_results.issues)} security issues")
        ctx.emit(RunStatus.FIXING, f"Applying fixes for {len(scan_results.issues)} issues")
        fix_report = self.autofix_service.fix_repository(clone_result.local_path, scan_results.issues, ctx=ctx)

        if not fix_report.applied_fixes:
            ctx.emit(RunStatus.COMPLETED, "No fixes could be applied automatically")
            return {
                "success": True,
                "message": "No fixes could be applied automatically",
                "repository": _repository_summary(clone_result, include_path=False),
                "scan_results": _dump(scan_results),
                "fix_results": _dump(fix_report),
                "pull_request": None,
            }

        branch_name = new_fix_branch_name()
        logger.info(f"🌿 Creating branch: {branch_name}")
        ctx.emit(RunStatus.FIXING, f"Creating branch {branch_name} for fixes")
        self.repository_service.create_fix_branch(clone_result.local_path, branch_name)

        ctx.emit(RunStatus.FIXING, f"Committing and pushing changes to branch {branch_name}")
        commit_result = self.repository_service.commit_and_push_changes(
            clone_result.local_path,
            branch_name,
            installation.id,
            repository.full_name,
            build_commit_message(fix_report),
        )

        if not commit_result.has_changes:
            ctx.emit(RunStatus.COMPLETED, "No changes to commit after applying fixes")
            return {
                "success": True,
                "message": "No changes to commit",
                "repository": _repository_summary(clone_result, include_path=False),
                "scan_results": _dump(scan_results),
                "fix_results": _dump(fix_report),
                "pull_request": None,
            }

        logger.info("📤 Creating pull request for fixes")
        ctx.emit(RunStatus.CREATING_PR, f"Creating pull request for branch {branch_name}")
        pull_request = self.repository_service.create_pull_request(
            repository, installation, branch_name, fix_report
        )

        ctx.emit(RunStatus.COMPLETED, f"Pull request created successfully: {pull_request.html_url}")
        return {
            "success": True,
            "message": "Security fixes applied and pull request created successfully",
            "repository": _repository_summary(clone_result),
            "scan_results": _dump(scan_results),
            "fix_results": _dump(fix_report),
            "pull_request": pull_request.model_dump(mode="json"),
            "summary": {
                "issues_found": len(scan_results.issues),
                "fixes_applied": len(fix_report.applied_fixes),
                "success_rate": fix_report.summary.success_rate,
                "pull_request_created": True,
            },
        }

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def cloned_repositories(self) -> Dict[str, Any]:
        cloned = self.repository_service.get_cloned_repositories()
        return {
            "success": True,
            "count": len(cloned),
            "cloned_repositories": [c.model_dump(mode="json") for c in cloned],
        }

    def scan_logs(self) -> Dict[str, Any]:
        entries = self.log_store.entries()
        return {
            "success": True,
            "scan_logs": [e.model_dump(mode="json", by_alias=True) for e in entries],
            "count": len(entries),
        }
