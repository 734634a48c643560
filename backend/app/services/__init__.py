"""Services for SecureBot."""

from .github_app_service import GitHubAppService
from .repository_service import RepositoryService
from .security_scanner import SecurityScanner
from .autofix_service import AutofixService
from .pipeline_service import SecureBotPipeline

__all__ = [
    "GitHubAppService",
    "RepositoryService",
    "SecurityScanner",
    "AutofixService",
    "SecureBotPipeline",
]
