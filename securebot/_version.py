"""
Version information for the SecureBot package.

This module provides the single source of truth for version information.
Update both __version__ and __release_date__ when releasing new versions.
"""

__version__ = "1.0.0"
__version_info__ = tuple(map(int, __version__.split(".")))
__release_date__ = "Oct 18, 2026"

# Additional version metadata
__description__ = "Automated security scanning and AI-assisted fixing for GitHub App installations"
