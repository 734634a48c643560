"""
Thin wrapper around the git executable.

Every call has a timeout; failures raise GitCommandError with any embedded
installation token redacted from the command line and stderr.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from ..config import config
from .errors import GitCommandError, redact_token

logger = logging.getLogger(__name__)


def run_git(
    args: List[str],
    cwd: Union[str, Path, None] = None,
    timeout: Optional[int] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run ``git <args>`` and return the completed process.

    Args:
        args: Git command arguments (without the 'git' prefix)
        cwd: Working directory for the command
        timeout: Seconds before the process is killed (defaults to the operation timeout)
        check: Raise GitCommandError on a non-zero exit code

    Raises:
        GitCommandError: On timeout, or on non-zero exit when ``check`` is set
    """
    timeout = timeout or config.get_operation_timeout()
    command = "git " + " ".join(args)
    logger.debug(f"$ {redact_token(command)} (cwd={cwd})")

    try:
        result = subprocess.run(
            ["git"] + args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise GitCommandError(command, -1, f"timed out after {timeout}s")
    except FileNotFoundError:
        raise GitCommandError(command, -1, "git executable not found")

    if check and result.returncode != 0:
        raise GitCommandError(command, result.returncode, result.stderr or result.stdout)
    return result
