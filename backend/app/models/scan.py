"""
Scanner data models.

A scan produces zero or more immutable Findings plus a severity summary.
Field aliases give the camelCase shape API clients consume.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Finding severity."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class FindingType(str, Enum):
    """Catalogue of detectable defects."""
    UNSAFE_EVAL = "UNSAFE_EVAL"
    HARDCODED_SECRET = "HARDCODED_SECRET"
    SQL_INJECTION = "SQL_INJECTION"
    INSECURE_HTTP = "INSECURE_HTTP"
    WEAK_CRYPTO = "WEAK_CRYPTO"
    INPUT_VALIDATION = "INPUT_VALIDATION"


class RiskLevel(str, Enum):
    """Repository-level risk derived from the worst finding."""
    HIGH_RISK = "HIGH_RISK"
    MEDIUM_RISK = "MEDIUM_RISK"
    LOW_RISK = "LOW_RISK"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Finding(_CamelModel):
    """One located, typed security issue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    file_path: str
    file_name: str
    severity: Severity
    type: FindingType
    description: str
    line_number: int = 1


class ScanSummary(_CamelModel):
    """Finding counts by severity."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    total: int = 0
    risk_level: RiskLevel = RiskLevel.LOW_RISK


class ScanResult(_CamelModel):
    """Full result of scanning one repository workspace."""

    repo_path: str
    total_files: int = 0
    files_scanned: int = 0
    summary: ScanSummary = Field(default_factory=ScanSummary)
    issues: List[Finding] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
