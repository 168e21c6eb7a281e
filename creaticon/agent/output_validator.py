from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from creaticon.agent.artifacts import TargetKind, ValidationCheck, ValidationReport

OPENERS = {"(": ")", "[": "]", "{": "}"}
CLOSERS = {")": "(", "]": "[", "}": "{"}
QUOTES = ("'", "\"", "`")

EXPORT_MARKER = re.compile(r"\bexport\s+(?:default\b|\{|function\b|const\b|class\b)")

# kind -> (minimum length, keywords that must all appear, case-insensitive)
QUALITY_RULES: dict[str, tuple[int, tuple[str, ...]]] = {
    "icon-pack": (150, ("<svg",)),
    "ui-bundle": (300, ("<body", "<style")),
    "component": (100, ("return",)),
}

SUGGESTIONS = {
    "parses": {
        "icon-pack": "Return inline <svg> elements; the output contained none.",
        "ui-bundle": "Return a complete HTML document with real markup.",
        "component": "Check that every (, [ and { has a matching closer.",
    },
    "entry_point": {
        "icon-pack": "Wrap the icons in a full document with <html> and <body>.",
        "ui-bundle": "Wrap the page in a full document with <html> and <body>.",
        "component": "Add an `export default` for the component.",
    },
    "quality": {
        "icon-pack": "Produce a complete icon set rather than a placeholder.",
        "ui-bundle": "Include embedded styles and a populated <body>.",
        "component": "Return the full component including its render output.",
    },
}


@dataclass(frozen=True)
class BracketIssue:
    message: str
    position: int
    line: int
    column: int


def _line_column(source: str, position: int) -> tuple[int, int]:
    line = source.count("\n", 0, position) + 1
    line_start = source.rfind("\n", 0, position) + 1
    return line, position - line_start + 1


def _skip_comment_or_string(source: str, position: int) -> int:
    """Index just past the comment or string literal starting at `position`, or `position` itself.

    Quoted strings stop at a newline so a stray apostrophe in JSX text only hides one line.
    """
    ch = source[position]
    pair = source[position:position + 2]
    if pair == "//":
        end = source.find("\n", position)
        return len(source) if end == -1 else end
    if pair == "/*":
        end = source.find("*/", position + 2)
        return len(source) if end == -1 else end + 2
    if ch not in QUOTES:
        return position
    index = position + 1
    while index < len(source):
        current = source[index]
        if current == "\\":
            index += 2
            continue
        if current == ch:
            return index + 1
        if current == "\n" and ch != "`":
            return index
        index += 1
    return len(source)


def find_unbalanced_bracket(source: str) -> BracketIssue | None:
    """Stack scan over ()[]{}, skipping comments and string literals.

    Reports the first closer with no matching opener, or failing that the innermost
    opener still unclosed at the end of input.
    """
    stack: list[tuple[str, int]] = []
    position = 0
    while position < len(source):
        skipped = _skip_comment_or_string(source, position)
        if skipped != position:
            position = skipped
            continue
        ch = source[position]
        if ch in OPENERS:
            stack.append((ch, position))
        elif ch in CLOSERS:
            if not stack:
                line, column = _line_column(source, position)
                return BracketIssue(f"Unexpected '{ch}' with no matching opener", position, line, column)
            opener, opener_pos = stack.pop()
            if opener != CLOSERS[ch]:
                line, column = _line_column(source, position)
                return BracketIssue(
                    f"Mismatched '{ch}': expected '{OPENERS[opener]}' to close '{opener}' at index {opener_pos}",
                    position,
                    line,
                    column,
                )
        position += 1
    if stack:
        opener, position = stack[-1]
        line, column = _line_column(source, position)
        return BracketIssue(f"Unclosed '{opener}'", position, line, column)
    return None


def _check_parses(text: str, kind: TargetKind) -> ValidationCheck:
    if kind == "component":
        issue = find_unbalanced_bracket(text)
        if issue:
            return ValidationCheck(
                name="parses",
                passed=False,
                detail=f"{issue.message} at line {issue.line}, column {issue.column}",
            )
        return ValidationCheck(name="parses", passed=True)

    soup = BeautifulSoup(text, "html.parser")
    if kind == "icon-pack":
        count = len(soup.find_all("svg"))
        return ValidationCheck(name="parses", passed=count > 0, detail=f"{count} <svg> elements")
    has_elements = soup.find(True) is not None
    return ValidationCheck(
        name="parses",
        passed=has_elements,
        detail=None if has_elements else "No HTML elements found",
    )


def _check_entry_point(text: str, kind: TargetKind) -> ValidationCheck:
    if kind == "component":
        passed = bool(EXPORT_MARKER.search(text))
        return ValidationCheck(
            name="entry_point", passed=passed, detail=None if passed else "No export found"
        )
    soup = BeautifulSoup(text, "html.parser")
    missing = [tag for tag in ("html", "body") if soup.find(tag) is None]
    return ValidationCheck(
        name="entry_point",
        passed=not missing,
        detail=f"Missing <{'>, <'.join(missing)}>" if missing else None,
    )


def _check_quality(text: str, kind: TargetKind) -> ValidationCheck:
    min_length, keywords = QUALITY_RULES[kind]
    problems = []
    if len(text.strip()) < min_length:
        problems.append(f"output is {len(text.strip())} characters, expected at least {min_length}")
    lowered = text.lower()
    missing = [kw for kw in keywords if kw.lower() not in lowered]
    if missing:
        problems.append(f"missing {', '.join(missing)}")
    return ValidationCheck(name="quality", passed=not problems, detail="; ".join(problems) or None)


def validate_output(text: str, kind: TargetKind) -> ValidationReport:
    """Run the structural checks a generated output must pass before extraction.

    All three checks must pass; each failure contributes one issue and one suggestion.
    """
    text = text or ""
    checks = [
        _check_parses(text, kind),
        _check_entry_point(text, kind),
        _check_quality(text, kind),
    ]
    issues: list[str] = []
    suggestions: list[str] = []
    for check in checks:
        if check.passed:
            continue
        issues.append(f"{check.name}: {check.detail}" if check.detail else check.name)
        suggestions.append(SUGGESTIONS[check.name][kind])
    return ValidationReport(
        passed=not issues,
        checks=checks,
        issues=issues,
        suggestions=suggestions,
    )
