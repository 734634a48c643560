"""
Shared service instances to ensure consistency across API endpoints.

The pipeline (and with it the scan log polled by clients) must be a single
instance per process. It is built lazily so the app can start and serve
read-only endpoints even when GitHub App credentials are missing.
"""

import logging
import threading
from typing import Optional

from ..config import config
from .ai_oracle_service import AbstractCoreOracle, RetryingOracle
from .autofix_service import AutofixService
from .github_app_service import GitHubAppService
from .pipeline_service import SecureBotPipeline
from .repository_service import RepositoryService
from .scan_log_service import ScanLogStore
from .security_scanner import SecurityScanner

logger = logging.getLogger(__name__)

_pipeline: Optional[SecureBotPipeline] = None
_pipeline_lock = threading.Lock()


def build_pipeline() -> SecureBotPipeline:
    """Wire every component from the project configuration."""
    github_app_service = GitHubAppService()
    repository_service = RepositoryService(github_app_service, repos_dir=config.get_repos_dir())
    oracle = RetryingOracle(AbstractCoreOracle())
    pipeline = SecureBotPipeline(
        github_app_service=github_app_service,
        repository_service=repository_service,
        scanner=SecurityScanner(),
        autofix_service=AutofixService(oracle),
        log_store=ScanLogStore(),
    )
    logger.info(f"✅ SecureBot pipeline ready (workspaces in {repository_service.repos_dir})")
    return pipeline


def get_pipeline() -> SecureBotPipeline:
    """Process-wide pipeline instance."""
    global _pipeline
    if _pipeline is None:
        with _pipeline_lock:
            if _pipeline is None:
                _pipeline = build_pipeline()
    return _pipeline


__all__ = ["get_pipeline", "build_pipeline"]
