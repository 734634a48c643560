"""
SecureBot API endpoints.

Installation lookups, the scan and fix-and-PR runs, and the diagnostics the
dashboard polls. Every failure comes back as JSON with ``success: false``,
an ``error`` string and a ``message``; this module is the single place that
maps service exceptions onto HTTP status codes.

Pipeline calls block on git subprocesses and LLM round-trips, so they run in
the default thread pool to keep ``/scan/logs`` responsive during a run.
"""

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, Optional, Union

from fastapi import APIRouter, Body, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .._version import __version__
from ..services.errors import (
    AIConfigurationError, AppNotInstalledError, ConfigurationError, InvalidRequestError,
    OracleRateLimitedError, is_rate_limit_message,
)
from ..services import shared

logger = logging.getLogger(__name__)

router = APIRouter()


class RepositoryRunRequest(BaseModel):
    """Request model for scan and fix runs."""
    repoId: Optional[Union[int, str]] = None
    username: Optional[str] = None


def _failure(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message, **extra},
    )


async def _run(func: Callable, *args) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


def _common_failure(e: Exception, default_error: str) -> JSONResponse:
    """Map the errors shared by every endpoint."""
    if isinstance(e, InvalidRequestError):
        return _failure(status.HTTP_400_BAD_REQUEST, str(e), str(e))
    if isinstance(e, ConfigurationError):
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Service configuration error",
            str(e),
            solution="Please set GITHUB_APP_ID and GITHUB_PRIVATE_KEY",
        )
    logger.error(f"❌ {default_error}: {e}")
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, default_error, str(e))


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "success": True,
        "message": "SecureBot API is running",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
    }


@router.get("/installation/status")
async def installation_status(username: Optional[str] = Query(default=None)):
    """Installation status and accessible repositories for a GitHub account."""
    try:
        pipeline = shared.get_pipeline()
        return await _run(pipeline.installation_status, username)
    except AppNotInstalledError as e:
        return {
            "success": False,
            "installed": False,
            "message": str(e),
            "install_url": e.install_url,
            "username": username,
        }
    except Exception as e:
        return _common_failure(e, "Failed to check installation status")


@router.get("/user/{username}/repositories")
async def user_repositories(username: str):
    """Repositories for a GitHub account, with a security status stub per repository."""
    try:
        pipeline = shared.get_pipeline()
        return await _run(pipeline.user_repositories, username)
    except AppNotInstalledError as e:
        return {
            "success": False,
            "installed": False,
            "message": str(e),
            "install_url": e.install_url,
            "username": username,
            "repositories": [],
            "repository_count": 0,
        }
    except Exception as e:
        return _common_failure(e, "Failed to get user repositories")


def _run_failure(e: Exception, default_error: str) -> JSONResponse:
    if isinstance(e, AppNotInstalledError):
        return _failure(status.HTTP_403_FORBIDDEN, "GitHub App not installed", str(e),
                        install_url=e.install_url)
    return _common_failure(e, default_error)


@router.post("/scan")
async def scan_repository(request: Optional[RepositoryRunRequest] = Body(default=None)):
    """Clone (or update) a repository and scan it for security issues."""
    try:
        pipeline = shared.get_pipeline()
        request = request or RepositoryRunRequest()
        return await _run(pipeline.scan, request.repoId, request.username)
    except Exception as e:
        return _run_failure(e, "Failed to scan repository")


@router.post("/fix")
async def fix_repository(request: Optional[RepositoryRunRequest] = Body(default=None)):
    """Scan, fix with AI, push a branch and open a pull request."""
    try:
        pipeline = shared.get_pipeline()
        request = request or RepositoryRunRequest()
        return await _run(pipeline.fix, request.repoId, request.username)
    except Exception as e:
        message = str(e)
        if isinstance(e, AIConfigurationError) or "LLM_API_KEY" in message:
            return _failure(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "AI service configuration error",
                "LLM API key is missing or invalid",
                solution="Please set LLM_API_KEY (or choose a local LLM_PROVIDER) in your environment",
            )
        if isinstance(e, OracleRateLimitedError) or is_rate_limit_message(message):
            return _failure(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "AI service rate limit exceeded",
                message,
                solution="Please try again in a few minutes",
            )
        return _run_failure(e, "Failed to fix repository and create PR")


@router.get("/repositories/cloned")
async def cloned_repositories():
    """Workspaces currently on disk."""
    try:
        pipeline = shared.get_pipeline()
        return await _run(pipeline.cloned_repositories)
    except Exception as e:
        return _common_failure(e, "Failed to get cloned repositories")


@router.get("/scan/logs")
async def scan_logs():
    """Log of the most recent scan or fix run."""
    try:
        return shared.get_pipeline().scan_logs()
    except Exception as e:
        return _common_failure(e, "Failed to get scan logs")
