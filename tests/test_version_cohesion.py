from __future__ import annotations

from pathlib import Path

import tomllib


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def test_version_is_single_source_of_truth_across_repo() -> None:
    """
    Prevent drift in public-facing version surfaces.

    Canonical source of truth: `securebot/_version.py`.
    """
    from securebot._version import __version__ as canonical_version

    # Backend runtime surface (`/api/health`, `/`) should match canonical
    from backend.app._version import __version__ as backend_version

    assert backend_version == canonical_version

    # Packaging must derive version dynamically (no manual duplication)
    pyproject = tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text(encoding="utf-8"))
    assert pyproject["project"]["dynamic"] == ["version"]
    assert pyproject["tool"]["setuptools"]["dynamic"]["version"]["attr"] == "securebot._version.__version__"

    # README "Current Status" should match canonical
    readme = (PROJECT_ROOT / "README.md").read_text(encoding="utf-8")
    assert f"**Version**: {canonical_version}" in readme


def test_health_reports_canonical_version() -> None:
    from fastapi.testclient import TestClient

    from backend.app.main import app
    from securebot._version import __version__

    assert TestClient(app).get("/api/health").json()["version"] == __version__
