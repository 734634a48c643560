"""
Autofix data models.

Autofix is a trust boundary: whenever we rewrite a file, the record must be
explicit, auditable, and reversible (every applied fix names its backup).
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FixStatus(str, Enum):
    """Outcome of attempting one finding."""
    FIXED_BY_AI = "fixed_by_ai"
    FILE_NOT_FOUND = "file_not_found"
    NO_CHANGES = "no_changes"
    VALIDATION_FAILED = "validation_failed"
    PROCESSING_ERROR = "processing_error"
    SKIPPED = "skipped"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SizeChange(_CamelModel):
    """Before/after size of a rewritten file (characters)."""

    original_size: int
    fixed_size: int
    size_difference: int


class FixResult(_CamelModel):
    """Immutable record of one attempted finding."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    file_path: str
    file_name: str
    issue: str
    status: FixStatus
    reason: Optional[str] = None
    explanation: Optional[str] = None
    backup_created: Optional[str] = None
    changes: Optional[SizeChange] = None


class FixSummary(_CamelModel):
    """Aggregate counts; success rate is successful / total issues."""

    total_issues: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    success_rate: str = "100%"


class FixReport(_CamelModel):
    """Everything a fix run did to the workspace."""

    applied_fixes: List[FixResult] = Field(default_factory=list)
    failed_fixes: List[FixResult] = Field(default_factory=list)
    skipped_files: List[FixResult] = Field(default_factory=list)
    summary: FixSummary = Field(default_factory=FixSummary)
