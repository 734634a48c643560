"""
Regex-based vulnerability scanner.

The rule table below is the contract: downstream fix prompts and tests depend
on these exact patterns and suppression conditions. The engine itself is
generic over the table, so an AST-based rule can replace a regex one as long
as it keeps the same trigger and suppression semantics.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Pattern, Tuple, Union

from ..models.scan import Finding, FindingType, RiskLevel, ScanResult, ScanSummary, Severity
from ..models.scan_log import RunStatus
from .errors import ScanError
from .scan_log_service import RunContext

logger = logging.getLogger(__name__)

SCANNABLE_EXTENSIONS = {".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".php", ".rb", ".go", ".cs"}
EXCLUDED_DIRS = {"node_modules", "dist", "build", ".git", "repos"}
MAX_DEPTH = 10
MAX_SCAN_FILE_SIZE = 200 * 1024

CLEAN_RECOMMENDATIONS = ["✅ No security issues found"]
ISSUE_RECOMMENDATIONS = ["🔧 Address security vulnerabilities", "📚 Review code security practices"]


@dataclass(frozen=True)
class ScanRule:
    """
    One detector.

    A rule fires when ``pattern`` matches and none of the suppressions apply:
    - any ``suppress_if_contains`` marker appears in the file (exact, case-sensitive)
    - ``suppress_if_matches`` matches anywhere in the file
    - ``skip_commented`` is set and every match starts with a ``//`` line comment
    """

    type: FindingType
    severity: Severity
    description: str
    pattern: Pattern[str]
    suppress_if_contains: Tuple[str, ...] = ()
    suppress_if_matches: Optional[Pattern[str]] = None
    skip_commented: bool = False

    def match(self, content: str) -> Optional["re.Match[str]"]:
        first = self.pattern.search(content)
        if first is None:
            return None
        if any(marker in content for marker in self.suppress_if_contains):
            return None
        if self.suppress_if_matches is not None and self.suppress_if_matches.search(content):
            return None
        if self.skip_commented and all(
            m.group(0).strip().startswith("//") for m in self.pattern.finditer(content)
        ):
            return None
        return first


DEFAULT_RULES: Tuple[ScanRule, ...] = (
    ScanRule(
        type=FindingType.UNSAFE_EVAL,
        severity=Severity.CRITICAL,
        description="🚨 eval() usage detected - potential code injection vulnerability",
        pattern=re.compile(r"(?:^|[^/*\s]).*eval\s*\(", re.MULTILINE),
        suppress_if_contains=("ast.literal_eval", "status(400)"),
        skip_commented=True,
    ),
    ScanRule(
        type=FindingType.HARDCODED_SECRET,
        severity=Severity.CRITICAL,
        description="🚨 Hardcoded credentials found - security risk",
        pattern=re.compile(r"""(?:password|apikey|secret|token)\s*[:=]\s*["'][^"']{8,}["']""", re.IGNORECASE),
        suppress_if_contains=("REMOVED_FOR_SECURITY", "YOUR_API_KEY", "PLACEHOLDER", "example.com"),
    ),
    ScanRule(
        type=FindingType.SQL_INJECTION,
        severity=Severity.HIGH,
        description="⚠️ SQL injection risk - dynamic query construction",
        pattern=re.compile(r"""(?:SELECT|INSERT|UPDATE|DELETE).*["']\s*\+""", re.IGNORECASE),
    ),
    ScanRule(
        type=FindingType.INSECURE_HTTP,
        severity=Severity.MEDIUM,
        description="🔓 Insecure HTTP request detected",
        pattern=re.compile(r"http://(?!localhost|127\.0\.0\.1)", re.IGNORECASE),
    ),
    ScanRule(
        type=FindingType.WEAK_CRYPTO,
        severity=Severity.MEDIUM,
        description="🔐 Weak cryptographic hash detected",
        pattern=re.compile(r"md5|sha1", re.IGNORECASE),
        suppress_if_matches=re.compile(r"sha256|sha512", re.IGNORECASE),
    ),
    ScanRule(
        type=FindingType.INPUT_VALIDATION,
        severity=Severity.MEDIUM,
        description="📝 Potential missing input validation",
        pattern=re.compile(r"req\.(query|params|body)\.[a-zA-Z]+"),
        suppress_if_contains=("validator", "validate", "sanitize"),
    ),
)


def line_number_at(content: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return content.count("\n", 0, offset) + 1


def risk_level_for(critical: int, high: int) -> RiskLevel:
    if critical > 0:
        return RiskLevel.HIGH_RISK
    if high > 0:
        return RiskLevel.MEDIUM_RISK
    return RiskLevel.LOW_RISK


class SecurityScanner:
    """Walk a workspace and evaluate every rule against each eligible file."""

    def __init__(self, rules: Tuple[ScanRule, ...] = DEFAULT_RULES,
                 max_file_size: int = MAX_SCAN_FILE_SIZE):
        self.rules = rules
        self.max_file_size = max_file_size

    def iter_files(self, root: Path) -> Iterator[Path]:
        """
        Candidate files under ``root`` in a stable order.

        Only names with an extension are listed, hidden files and directories
        are never entered, and EXCLUDED_DIRS are pruned at the repository root
        only (``src/build/`` is still scanned).
        """
        for dirpath, dirnames, filenames in os.walk(root):
            depth = len(Path(dirpath).relative_to(root).parts)
            if depth >= MAX_DEPTH:
                dirnames[:] = []
                continue
            excluded = EXCLUDED_DIRS if depth == 0 else set()
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in excluded)
            for filename in sorted(filenames):
                if filename.startswith(".") or "." not in filename:
                    continue
                yield Path(dirpath) / filename

    def scan_content(self, content: str, file_path: Union[str, Path]) -> List[Finding]:
        """Apply every rule to one file's text."""
        file_path = Path(file_path)
        findings = []
        for rule in self.rules:
            match = rule.match(content)
            if match is None:
                continue
            findings.append(Finding(
                file_path=str(file_path),
                file_name=file_path.name,
                severity=rule.severity,
                type=rule.type,
                description=rule.description,
                line_number=line_number_at(content, match.start()),
            ))
        return findings

    def scan_repository(self, repo_path: Union[str, Path], ctx: Optional[RunContext] = None) -> ScanResult:
        """
        Scan a repository workspace.

        Has no side effects on the tree: scanning an unchanged tree twice
        yields identical findings.
        """
        try:
            root = Path(repo_path)
            logger.info(f"🔍 Security scan started for: {root}")
            if not root.exists():
                raise ScanError("Repository path does not exist")

            files = list(self.iter_files(root))
            logger.info(f"📁 Found {len(files)} files")
            if ctx:
                ctx.emit(RunStatus.SCANNING, f"Found {len(files)} files to scan")

            issues: List[Finding] = []
            files_scanned = 0
            for file_path in files:
                if file_path.suffix.lower() not in SCANNABLE_EXTENSIONS:
                    continue
                try:
                    if file_path.stat().st_size > self.max_file_size:
                        continue
                    content = file_path.read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.error(f"❌ Error scanning {file_path}: {e}")
                    continue
                files_scanned += 1
                issues.extend(self.scan_content(content, file_path))

            critical = sum(1 for i in issues if i.severity == Severity.CRITICAL)
            high = sum(1 for i in issues if i.severity == Severity.HIGH)
            summary = ScanSummary(
                critical=critical,
                high=high,
                medium=sum(1 for i in issues if i.severity == Severity.MEDIUM),
                total=len(issues),
                risk_level=risk_level_for(critical, high),
            )

            logger.info(f"✅ Scan complete: {len(issues)} issues found")
            if ctx:
                ctx.emit(
                    RunStatus.SCANNED,
                    f"Scan complete: {len(issues)} issues found "
                    f"(Critical: {summary.critical}, High: {summary.high}, Medium: {summary.medium})",
                )

            return ScanResult(
                repo_path=str(root),
                total_files=len(files),
                files_scanned=files_scanned,
                summary=summary,
                issues=issues,
                recommendations=list(CLEAN_RECOMMENDATIONS if not issues else ISSUE_RECOMMENDATIONS),
            )
        except ScanError as e:
            logger.error(f"❌ Scan error: {e}")
            raise ScanError(f"Error during scan: {e}") from e
        except OSError as e:
            logger.error(f"❌ Scan error: {e}")
            raise ScanError(f"Error during scan: {e}") from e
