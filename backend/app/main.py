"""
FastAPI main application for SecureBot.

SecureBot scans repositories reachable through a GitHub App installation for
common security defects, rewrites offending files with a generative model,
and opens a pull request with the fixes.
"""

from datetime import datetime
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import securebot
from .config import config
from ._version import __version__

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SecureBot API",
    description="Automated security analysis and AI-assisted fixing for GitHub repositories",
    version=__version__
)

missing = config.missing_required()
if missing:
    logger.warning(f"⚠️ Missing configuration: {', '.join(missing)} (pipeline endpoints will fail)")
if config.llm_requires_api_key() and not config.get_llm_api_key():
    logger.warning(f"⚠️ LLM_API_KEY not set for provider {config.get_llm_provider()} (fix requests will fail)")


# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"🌐 HTTP {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"🌐 Response: {response.status_code}")
    return response


# Malformed or mistyped request bodies are client errors in the API error shape
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    )
    logger.warning(f"⚠️ Invalid request to {request.method} {request.url.path}: {details}")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request body",
            "message": details or "Request body could not be parsed",
        },
    )


# Anything that escapes a route still gets the JSON error shape, without a stack trace
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"🚨 Unhandled error in {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc),
            "timestamp": datetime.now().isoformat(),
        },
    )


# Allow all origins if CORS_ORIGINS is "*" (for development/testing)
# Otherwise split comma-separated list of allowed origins
cors_origins_env = os.getenv("CORS_ORIGINS", "*")
allowed_origins = ["*"] if cors_origins_env == "*" else cors_origins_env.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(securebot.router, prefix="/api", tags=["securebot"])


@app.get("/")
async def root():
    """Service banner with version and endpoint map."""
    return {
        "message": "🔒 SecureBot - Automated Security Analysis & Fixing",
        "description": "SecureBot integrates GitHub App authentication with automated "
                       "security scanning and fixing capabilities",
        "version": __version__,
        "features": [
            "GitHub App Integration",
            "Automated Security Scanning",
            "AI-Powered Code Fixing",
            "Automated Pull Request Creation",
            "Repository Management",
        ],
        "endpoints": {
            "health": "GET /api/health",
            "installation_status": "GET /api/installation/status?username=<github_username>",
            "user_repositories": "GET /api/user/<username>/repositories",
            "scan_repository": "POST /api/scan",
            "fix_and_create_pr": "POST /api/fix",
            "cloned_repositories": "GET /api/repositories/cloned",
            "scan_logs": "GET /api/scan/logs",
        },
        "timestamp": datetime.now().isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, timeout_keep_alive=config.get_operation_timeout())
