"""
AI-assisted autofix engine.

Autofix is a trust boundary:
- Files that are too large, binary, or generated are never sent to the model.
- The model's answer is cleaned and validated before anything is written.
- Every rewrite is preceded by a byte-identical backup (``<file>.backup_<epoch-ms>``).
"""

from __future__ import annotations

import json
import logging
import math
import re
import shutil
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from ..models.fix import FixReport, FixResult, FixStatus, FixSummary, SizeChange
from ..models.scan import Finding
from ..models.scan_log import RunStatus
from .ai_oracle_service import RewriteOracle
from .errors import AIConfigurationError, FixError, OracleRateLimitedError, is_rate_limit_message
from .scan_log_service import RunContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 200 * 1024

BINARY_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".pdf", ".zip", ".exe", ".dll", ".ico", ".svg"}

GENERATED_FILES = {
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "composer.lock",
    "Pipfile.lock",
    "poetry.lock",
}

GENERATED_PATH_PATTERNS = [
    re.compile(r"/node_modules/"),
    re.compile(r"/\.git/"),
    re.compile(r"/dist/"),
    re.compile(r"/build/"),
    re.compile(r"/coverage/"),
    re.compile(r"/\.next/"),
    re.compile(r"/\.nuxt/"),
]

RESPONSE_PREFIXES = [
    "Here is the fixed content:",
    "Fixed content:",
    "FIXED CONTENT:",
    "The corrected file content is:",
    "Here's the corrected version:",
]

_CODE_BLOCK_RE = re.compile(r"```[\w]*\n?([\s\S]*?)\n?```")

FIX_PROMPT_TEMPLATE = """You are an expert code security fixer. Fix the following security issue and return ONLY the complete corrected file content.

**IMPORTANT: Your response must contain ONLY the fixed file content. No explanations, no markdown formatting, no code blocks, no extra text.**

File: {file_name}
Issue: {issue}
Issue Type: {issue_type}
File Extension: {file_ext}

Security Fixing Instructions:
- For UNSAFE_EVAL: Replace eval() with safer alternatives like JSON.parse() or remove if unnecessary
- For HARDCODED_SECRET: Replace with environment variables or configuration placeholders
- For SQL_INJECTION: Use parameterized queries or escape user input properly
- For INSECURE_HTTP: Replace http:// with https:// for external requests
- For WEAK_CRYPTO: Replace MD5/SHA1 with SHA-256 or stronger algorithms
- For INPUT_VALIDATION: Add proper validation and sanitization

Original Content:
{content}

FIXED CONTENT:"""


def format_success_rate(successful: int, total: int) -> str:
    """Integer percent of successful fixes over *all* findings, half rounded up."""
    if total == 0:
        return "100%"
    return f"{math.floor(successful / total * 100 + 0.5)}%"


class AutofixService:
    """Rewrite flagged files through the oracle, one finding at a time."""

    def __init__(self, oracle: RewriteOracle):
        self.oracle = oracle

    # ------------------------------------------------------------------
    # Per-file helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_fix_prompt(content: str, finding: Finding, file_name: str, file_ext: str) -> str:
        return FIX_PROMPT_TEMPLATE.format(
            file_name=file_name,
            issue=finding.description,
            issue_type=finding.type.value,
            file_ext=file_ext,
            content=content,
        )

    @staticmethod
    def clean_ai_response(response: str) -> str:
        """Strip a Markdown code fence and boilerplate preambles from the model's answer."""
        cleaned = response.strip()

        if "```" in cleaned:
            match = _CODE_BLOCK_RE.search(cleaned)
            if match:
                cleaned = match.group(1)

        for prefix in RESPONSE_PREFIXES:
            if cleaned.lower().startswith(prefix.lower()):
                cleaned = cleaned[len(prefix):].strip()

        return cleaned

    @staticmethod
    def validate_fixed_content(content: str, file_ext: str) -> Tuple[bool, Optional[str]]:
        if file_ext == ".json":
            try:
                json.loads(content)
            except ValueError as e:
                return False, f"Validation failed: {e}"
        return True, None

    @staticmethod
    def should_skip_file(file_name: str, file_path: str) -> bool:
        """Lock files and anything under build/dependency directories."""
        normalized = file_path.replace("\\", "/")
        return file_name in GENERATED_FILES or any(p.search(normalized) for p in GENERATED_PATH_PATTERNS)

    def fix_file_content(self, original_content: str, finding: Finding, file_name: str, file_ext: str) -> str:
        prompt = self.build_fix_prompt(original_content, finding, file_name, file_ext)
        return self.clean_ai_response(self.oracle.rewrite(prompt))

    # ------------------------------------------------------------------
    # Repository-level
    # ------------------------------------------------------------------

    def fix_repository(
        self,
        repo_path: Union[str, Path],
        issues: Sequence[Finding],
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        ctx: Optional[RunContext] = None,
    ) -> FixReport:
        """
        Attempt every finding in order.

        Per-file problems are recorded and the loop continues. Oracle rate
        limiting and missing AI configuration abort the whole run because
        every remaining file would fail the same way.
        """
        if not issues:
            return FixReport()

        logger.info(f"🔧 AI Fix request for: {repo_path} ({len(issues)} issues)")
        if ctx:
            ctx.emit(RunStatus.FIXING, f"Starting to fix {len(issues)} security issues")

        applied: List[FixResult] = []
        failed: List[FixResult] = []
        skipped: List[FixResult] = []

        try:
            for index, finding in enumerate(issues, start=1):
                file_path = Path(finding.file_path)
                file_name = file_path.name
                record = dict(file_path=str(file_path), file_name=file_name, issue=finding.description)

                logger.info(f"🔄 Processing {index}/{len(issues)}: {file_name}")
                if ctx:
                    ctx.emit(RunStatus.FIXING,
                             f"Processing {file_name} ({index}/{len(issues)}) - {finding.description}")

                try:
                    if not file_path.exists():
                        logger.warning(f"❌ File not found: {file_path}")
                        failed.append(FixResult(**record, status=FixStatus.FILE_NOT_FOUND,
                                                reason="File does not exist in repository"))
                        continue

                    size = file_path.stat().st_size
                    if size > max_file_size:
                        logger.warning(f"⏭️ Skipping large file ({round(size / 1024)}KB): {file_name}")
                        skipped.append(FixResult(
                            **record, status=FixStatus.SKIPPED,
                            reason=f"File too large ({round(size / 1024)}KB > {round(max_file_size / 1024)}KB)",
                        ))
                        continue

                    file_ext = file_path.suffix.lower()
                    if file_ext in BINARY_EXTENSIONS:
                        logger.info(f"⏭️ Skipping binary file: {file_name}")
                        skipped.append(FixResult(**record, status=FixStatus.SKIPPED,
                                                 reason="Binary file - cannot be processed"))
                        continue

                    if self.should_skip_file(file_name, str(file_path)):
                        logger.info(f"⏭️ Skipping auto-generated file: {file_name}")
                        skipped.append(FixResult(**record, status=FixStatus.SKIPPED,
                                                 reason="Auto-generated or dependency file"))
                        continue

                    with open(file_path, "r", encoding="utf-8", newline="") as f:
                        original_content = f.read()

                    fixed_content = self.fix_file_content(original_content, finding, file_name, file_ext)

                    if fixed_content == original_content:
                        logger.info("ℹ️ No changes made by AI")
                        failed.append(FixResult(**record, status=FixStatus.NO_CHANGES,
                                                reason="AI determined no changes were needed"))
                        continue

                    is_valid, error = self.validate_fixed_content(fixed_content, file_ext)
                    if not is_valid:
                        failed.append(FixResult(**record, status=FixStatus.VALIDATION_FAILED, reason=error))
                        continue

                    backup_path = f"{file_path}.backup_{int(time.time() * 1000)}"
                    shutil.copyfile(file_path, backup_path)
                    logger.info(f"💾 Created backup: {Path(backup_path).name}")

                    with open(file_path, "w", encoding="utf-8", newline="") as f:
                        f.write(fixed_content)

                    applied.append(FixResult(
                        **record,
                        status=FixStatus.FIXED_BY_AI,
                        explanation=f"Successfully fixed: {finding.description}",
                        backup_created=backup_path,
                        changes=SizeChange(
                            original_size=len(original_content),
                            fixed_size=len(fixed_content),
                            size_difference=len(fixed_content) - len(original_content),
                        ),
                    ))
                    logger.info(f"✅ Successfully fixed {file_name} "
                                f"({len(original_content)} → {len(fixed_content)} chars)")
                    if ctx:
                        ctx.emit(RunStatus.FIXING, f"✓ Fixed {file_name} - {finding.description}")

                except (OracleRateLimitedError, AIConfigurationError):
                    raise
                except Exception as e:
                    if is_rate_limit_message(str(e)):
                        raise OracleRateLimitedError(str(e)) from e
                    logger.error(f"❌ Error processing {file_name}: {e}")
                    failed.append(FixResult(**record, status=FixStatus.PROCESSING_ERROR, reason=str(e)))
        except (OracleRateLimitedError, AIConfigurationError):
            raise
        except Exception as e:
            logger.error(f"❌ Fix processing error: {e}")
            raise FixError(f"Error processing fixes: {e}") from e

        summary = FixSummary(
            total_issues=len(issues),
            successful=len(applied),
            failed=len(failed),
            skipped=len(skipped),
            success_rate=format_success_rate(len(applied), len(issues)),
        )

        logger.info(f"📊 Fixing Summary: ✅ {summary.successful} ❌ {summary.failed} "
                    f"⏭️ {summary.skipped} 📈 {summary.success_rate}")
        if ctx:
            ctx.emit(
                RunStatus.FIXING,
                f"Fix complete: {summary.successful} fixed, {summary.failed} failed, "
                f"{summary.skipped} skipped ({summary.success_rate} success rate)",
            )

        return FixReport(applied_fixes=applied, failed_fixes=failed, skipped_files=skipped, summary=summary)
