"""Static guardrail scanner for untrusted composition source text.

Every rule is evaluated per line with `re.search`, so a match on one line never
influences attribution on the next. Rules fire in the declaration order of
`GUARDRAIL_RULES`; a line may trigger any number of them.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from reelgate.log import get_logger

_LOG = get_logger(__name__)

SCANNABLE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class GuardrailRule:
    """Immutable guardrail policy record."""

    code: str
    pattern: "re.Pattern[str]"
    severity: Severity
    message: str
    explanation: str
    fix: str
    guard: Optional["re.Pattern[str]"] = None

    def matches(self, line: str) -> bool:
        if not self.pattern.search(line):
            return False
        if self.guard is not None and self.guard.search(line):
            return False
        return True


@dataclass(frozen=True)
class Violation:
    line: int
    rule_code: str
    severity: Severity
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "code": self.rule_code,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class GuardrailReport:
    error_lines: Tuple[Violation, ...] = ()
    warning_lines: Tuple[Violation, ...] = ()

    @property
    def errors(self) -> List[str]:
        return [format_violation(item) for item in self.error_lines]

    @property
    def warnings(self) -> List[str]:
        return [format_violation(item) for item in self.warning_lines]

    @property
    def violations(self) -> List[Violation]:
        return sorted(
            list(self.error_lines) + list(self.warning_lines),
            key=lambda item: (item.line, _RULE_ORDER.get(item.rule_code, len(_RULE_ORDER))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"violations": [item.to_dict() for item in self.violations]}


_TYPEOF_BROWSER_GUARD = re.compile(r"typeof\s+(?:window|document)\s*[!=]==?\s*['\"]undefined['\"]")
_TYPEOF_ANY_GUARD = re.compile(r"typeof\s+[A-Za-z_$][\w$]*\s*[!=]==?\s*['\"]undefined['\"]")

GUARDRAIL_RULES: Tuple[GuardrailRule, ...] = (
    GuardrailRule(
        code="NO_MATH_RANDOM",
        pattern=re.compile(r"\bMath\.random\s*\("),
        severity=Severity.ERROR,
        message="Math.random() produces non-deterministic output - use seededRandom via props",
        explanation=(
            "Random numbers change on every render, which breaks reproducibility. "
            "A seeded generator driven by a prop yields the same frames for the same inputs."
        ),
        fix=(
            "Pass a `seed` prop and derive values from a seeded generator, e.g.\n"
            "const seededRandom = (seed) => { let v = seed; return () => "
            "(v = (v * 9301 + 49297) % 233280) / 233280 }"
        ),
    ),
    GuardrailRule(
        code="FETCH_WITHOUT_ASYNC",
        pattern=re.compile(r"\bfetch\s*\("),
        severity=Severity.ERROR,
        message="fetch() must use delayRender/continueRender for SSR compatibility",
        explanation=(
            "Network requests during rendering race the frame capture. The render must be "
            "suspended with delayRender() and resumed with continueRender() around the request."
        ),
        fix=(
            "const handle = delayRender()\n"
            "fetch(url).then((r) => r.json()).then((data) => { setData(data); continueRender(handle) })"
        ),
        guard=re.compile(r"\b(?:delayRender|continueRender)\b"),
    ),
    GuardrailRule(
        code="WINDOW_DOCUMENT_WITHOUT_GUARD",
        pattern=re.compile(r"\b(?:window|document)\b"),
        severity=Severity.ERROR,
        message="window/document must have typeof guard for SSR compatibility",
        explanation=(
            "window and document do not exist while compositions are evaluated server-side. "
            "Access must be guarded by a typeof check."
        ),
        fix="if (typeof window !== 'undefined') {\n  // browser-only code here\n}",
        guard=_TYPEOF_BROWSER_GUARD,
    ),
    GuardrailRule(
        code="FS_OPERATIONS",
        pattern=re.compile(r"\bfs\.\w+\s*\("),
        severity=Severity.ERROR,
        message="fs operations only allowed with typeof guard",
        explanation=(
            "File system access is unavailable in the browser rendering context and leaks "
            "host state into frames. It is only tolerated behind an environment guard."
        ),
        fix="if (typeof window === 'undefined') {\n  // server-only fs access here\n}",
        guard=_TYPEOF_ANY_GUARD,
    ),
    GuardrailRule(
        code="EVAL_OR_FUNCTION",
        pattern=re.compile(r"\beval\s*\(|\bFunction\s*\("),
        severity=Severity.ERROR,
        message="eval() or Function() allows arbitrary code execution",
        explanation=(
            "Dynamic code evaluation lets untrusted input execute arbitrary code during render. "
            "No guard makes it acceptable."
        ),
        fix="Use static imports or configuration passed through props instead.",
    ),
    GuardrailRule(
        code="PROCESS_ENV",
        pattern=re.compile(r"\bprocess\.env\b"),
        severity=Severity.WARNING,
        message="process.env can cause SSR issues",
        explanation=(
            "Environment variables differ between development and render hosts, so output "
            "may change with the machine it runs on."
        ),
        fix="Use explicit configuration values passed through props.",
    ),
)

_RULE_ORDER: Dict[str, int] = {rule.code: index for index, rule in enumerate(GUARDRAIL_RULES)}


def format_violation(violation: Violation) -> str:
    return f"Line {violation.line}: {violation.message}"


def list_rules() -> Tuple[GuardrailRule, ...]:
    return GUARDRAIL_RULES


def get_rule(code: str) -> Optional[GuardrailRule]:
    key = str(code or "").strip().upper()
    for rule in GUARDRAIL_RULES:
        if rule.code == key:
            return rule
    return None


def explain(code: str) -> Optional[str]:
    """Return a human-readable description of a rule, or None if unknown."""
    rule = get_rule(code)
    if rule is None:
        return None
    return (
        f"{rule.code}: {rule.message}\n\n"
        f"Severity: {rule.severity.value.upper()}\n\n"
        f"Pattern: {rule.pattern.pattern}\n\n"
        f"Explanation:\n{rule.explanation}\n\n"
        f"Fix:\n{rule.fix}\n"
    )


def scan(source_text: str) -> GuardrailReport:
    errors: List[Violation] = []
    warnings: List[Violation] = []
    for index, line in enumerate(str(source_text or "").split("\n")):
        line_number = index + 1
        for rule in GUARDRAIL_RULES:
            if not rule.matches(line):
                continue
            violation = Violation(
                line=line_number,
                rule_code=rule.code,
                severity=rule.severity,
                message=rule.message,
            )
            if rule.severity is Severity.ERROR:
                errors.append(violation)
            else:
                warnings.append(violation)
            _LOG.debug("Violation detected: %s at line %d", rule.code, line_number)

    if errors or warnings:
        _LOG.info("Guardrail check: %d error(s), %d warning(s)", len(errors), len(warnings))
    else:
        _LOG.debug("No guardrail violations found")
    return GuardrailReport(error_lines=tuple(errors), warning_lines=tuple(warnings))


def scan_file(path: str | Path) -> GuardrailReport:
    source = Path(path)
    _LOG.debug("Checking guardrails: %s", source)
    return scan(source.read_text(encoding="utf-8"))


def scan_directory(directory: str | Path) -> Dict[str, GuardrailReport]:
    """Scan every script file directly inside `directory`, in sorted order."""
    root = Path(directory)
    if not root.is_dir():
        return {}
    reports: Dict[str, GuardrailReport] = {}
    for name in sorted(os.listdir(root)):
        if name.startswith(".") or not name.lower().endswith(SCANNABLE_EXTENSIONS):
            continue
        full = root / name
        if full.is_file():
            reports[name] = scan_file(full)
    return reports
