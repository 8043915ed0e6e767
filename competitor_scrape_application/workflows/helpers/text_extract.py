from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from ..exceptions import ExtractionError
from .regex_patterns import CODE_FENCE_CONTENT_RE, JSON_START_RE, TABLE_ROW_RE, TABLE_SEPARATOR_RE

Expect = Union[Type[Any], Tuple[Type[Any], ...]]
Parser = Callable[..., Optional[Any]]

DEFAULT_EXPECT: Tuple[Type[Any], ...] = (dict, list)


def parse_strict(text: str, expect: Expect = DEFAULT_EXPECT) -> Optional[Any]:
    """Parse the whole text as JSON."""

    try:
        parsed = json.loads(text.strip())
    except (ValueError, AttributeError):
        return None
    return parsed if isinstance(parsed, expect) else None


def parse_fenced(text: str, expect: Expect = DEFAULT_EXPECT) -> Optional[Any]:
    """Parse the first fenced code block whose body is JSON of the expected type."""

    for match in CODE_FENCE_CONTENT_RE.finditer(text or ""):
        parsed = parse_strict(match.group("content"), expect)
        if parsed is not None:
            return parsed
    return None


def _scan_json_candidates(text: str) -> Iterable[Any]:
    decoder = json.JSONDecoder()
    for match in JSON_START_RE.finditer(text):
        idx = match.start()
        try:
            parsed, _ = decoder.raw_decode(text[idx:])
        except json.JSONDecodeError:
            continue
        yield parsed


def parse_balanced(text: str, expect: Expect = DEFAULT_EXPECT) -> Optional[Any]:
    """Find the first balanced object/array embedded in surrounding prose."""

    for parsed in _scan_json_candidates(text or ""):
        if isinstance(parsed, expect):
            return parsed
    return None


def first_success(*parsers: Parser) -> Parser:
    """Compose parsers; the first non-None result wins."""

    def _parse(text: str, expect: Expect = DEFAULT_EXPECT) -> Optional[Any]:
        for parser in parsers:
            parsed = parser(text, expect)
            if parsed is not None:
                return parsed
        return None

    return _parse


parse_json_payload = first_success(parse_strict, parse_fenced, parse_balanced)


def extract_json(text: Optional[str], expect: Expect = DEFAULT_EXPECT) -> Any:
    """Extract one JSON payload from a model response.

    Tries the whole text, then fenced blocks, then balanced substrings. Raises
    ExtractionError when none of them yields a value of the expected type.
    """

    if not text or not text.strip():
        raise ExtractionError("Model response was empty")
    parsed = parse_json_payload(text, expect)
    if parsed is None:
        preview = text.strip().replace("\n", "\\n")[:100]
        raise ExtractionError(f"No JSON payload found in model response: {preview}")
    return parsed


def _split_row(row: str) -> List[str]:
    return [cell.strip() for cell in row[1:-1].split("|")]


def extract_markdown_table(
    text: Optional[str],
    header_label: str,
    columns: Sequence[str],
    min_columns: Optional[int] = None,
) -> List[Dict[str, str]]:
    """Map the data rows of a markdown table onto ``columns`` by position.

    The header row is recognised by ``header_label``; separator rows and rows
    made only of pipes are skipped. Rows shorter than ``min_columns`` are dropped.
    """

    required = len(columns) if min_columns is None else min_columns
    label = header_label.strip().lower()
    entries: List[Dict[str, str]] = []
    for line in (text or "").splitlines():
        row = line.strip()
        if not TABLE_ROW_RE.match(row) or len(row) < 2:
            continue
        if TABLE_SEPARATOR_RE.match(row):
            continue
        if label and label in row.lower():
            continue
        cells = _split_row(row)
        if not any(cells):
            continue
        if len(cells) < required:
            continue
        entries.append({column: cells[index] if index < len(cells) else "" for index, column in enumerate(columns)})
    return entries
