from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

# A directive only counts inside a comment: `//`, `/*` or a `*` javadoc line.
_DIRECTIVE_RE = re.compile(
    r"(?://|/\*|^\s*\*).*?javasentinel:\s*(?P<kind>disable-file|disable-next-line|disable)\s*=\s*(?P<targets>[\w\s,-]+)",
    re.IGNORECASE,
)
_COMMENT_OR_ANNOTATION_RE = re.compile(r"^\s*(?://|/\*|\*|@\w[\w.]*(?:\(.*\))?\s*$)")


@dataclass(frozen=True, slots=True)
class Suppressions:
    """
    Rule suppressions read from comments in a Java source file.

    Targets are rule ids (`G03`), categories (`style`, `safety`, `design`)
    or `all`, comma separated:

    - `// javasentinel: disable-file=G07` anywhere in the file;
    - `int Bad_Name; // javasentinel: disable=G01` on the same line;
    - `// javasentinel: disable-next-line=safety` on the next code line,
      skipping blank lines, comments and annotations such as `@Override`.
    """

    file_wide: frozenset[str]
    by_line: Mapping[int, frozenset[str]]

    def covers(self, rule_id: str, category: str | None = None, *, line: int | None = None) -> bool:
        keys = {"ALL", rule_id.upper()}
        if category:
            keys.add(category.upper())
        if keys & self.file_wide:
            return True
        return line is not None and bool(keys & self.by_line.get(line, frozenset()))


NO_SUPPRESSIONS = Suppressions(file_wide=frozenset(), by_line=MappingProxyType({}))


def parse_suppressions(source: str) -> Suppressions:
    if "javasentinel" not in source.lower():
        return NO_SUPPRESSIONS

    lines = source.splitlines()
    file_wide: set[str] = set()
    by_line: dict[int, set[str]] = {}
    for number, text in enumerate(lines, start=1):
        for match in _DIRECTIVE_RE.finditer(text):
            targets = _targets(match.group("targets"))
            kind = match.group("kind").lower()
            if kind == "disable-file":
                file_wide |= targets
            elif kind == "disable":
                by_line.setdefault(number, set()).update(targets)
            else:
                by_line.setdefault(_next_code_line(lines, number), set()).update(targets)

    return Suppressions(
        file_wide=frozenset(file_wide),
        by_line=MappingProxyType({line: frozenset(ids) for line, ids in by_line.items()}),
    )


def _next_code_line(lines: list[str], after: int) -> int:
    """1-based number of the first line after `after` holding code; `after + 1` if none."""

    for number in range(after + 1, len(lines) + 1):
        text = lines[number - 1]
        if text.strip() and not _COMMENT_OR_ANNOTATION_RE.match(text):
            return number
    return after + 1


def _targets(raw: str) -> set[str]:
    return {token.upper() for token in re.split(r"[\s,]+", raw) if token}
