"""Data models for SecureBot."""

from .repository import (
    Installation, InstallationAccount, InstallationToken, RepositoryRef,
    RepositoryLocation, PullRequestRecord, CloneResult, CommitResult, ClonedRepository
)
from .scan import Finding, FindingType, Severity, RiskLevel, ScanSummary, ScanResult
from .fix import FixStatus, FixResult, FixSummary, FixReport, SizeChange
from .scan_log import RunStatus, ScanLogEntry

__all__ = [
    "Installation",
    "InstallationAccount",
    "InstallationToken",
    "RepositoryRef",
    "RepositoryLocation",
    "PullRequestRecord",
    "CloneResult",
    "CommitResult",
    "ClonedRepository",
    "Finding",
    "FindingType",
    "Severity",
    "RiskLevel",
    "ScanSummary",
    "ScanResult",
    "FixStatus",
    "FixResult",
    "FixSummary",
    "FixReport",
    "SizeChange",
    "RunStatus",
    "ScanLogEntry",
]
