"""Turn divergent research output into hypothesis candidates.

Strategies are tried in order and the first that yields candidates wins:

1. A JSON object ``{"hypotheses": [{"title", "summary"}, ...]}`` embedded
   in the output.
2. Structuring through a generation call (optional; see ``extract_candidates``).
3. Plain-text patterns: bracketed ``【Hypothesis N】`` markers, markdown
   ``## Hypothesis N`` headers, then numbered lists.
"""

import json
import logging
import re
from typing import Any, Callable, Iterator, List, Optional

from .dedup import Candidate

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_SUMMARY_LENGTH = 2000

# Numbered-list titles outside this range are prose, not hypotheses
_MIN_LIST_TITLE = 5
_MAX_LIST_TITLE = 200

_HYPOTHESIS_WORD = r"(?:Hypothesis|仮説)"

_BRACKET_PATTERN = re.compile(
    rf"【\s*{_HYPOTHESIS_WORD}\s*(\d+)\s*】\s*([^\n]+)(.*?)(?=【\s*{_HYPOTHESIS_WORD}\s*\d+\s*】|\Z)",
    re.DOTALL | re.IGNORECASE,
)
_HEADER_PATTERN = re.compile(
    rf"#{{2,3}}\s*{_HYPOTHESIS_WORD}\s*(\d+)[：:.\-\s]*([^\n]+)(.*?)(?=#{{2,3}}\s*{_HYPOTHESIS_WORD}|\Z)",
    re.DOTALL | re.IGNORECASE,
)
_NUMBERED_PATTERN = re.compile(
    r"(?:^|\n)(\d+)[.）)]\s*(?:\*\*)?([^\n*]+)(?:\*\*)?(.*?)(?=\n\d+[.）)]|\Z)",
    re.DOTALL,
)
_CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

STRUCTURING_PROMPT = """Extract every hypothesis from the research report below.
Respond with JSON only, in exactly this shape:
{"hypotheses": [{"title": "<short title>", "summary": "<one paragraph summary>"}]}

=== Report ===
{report}
"""


def clean_candidates(raw: List[Any]) -> List[Candidate]:
    """Validate raw ``{title, summary}`` entries, truncating long fields."""
    cleaned = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        title = entry.get("title")
        summary = entry.get("summary", "")
        if not isinstance(title, str) or not isinstance(summary, str) or not title.strip():
            continue
        cleaned.append(
            Candidate(
                title=title.strip()[:MAX_TITLE_LENGTH],
                summary=summary.strip()[:MAX_SUMMARY_LENGTH],
            )
        )
    return cleaned


def _balanced_object(content: str, start: int) -> Optional[str]:
    """Return the ``{...}`` starting at ``start``, skipping braces inside strings."""
    depth = 0
    in_string = False
    escape = False
    for i, char in enumerate(content[start:], start):
        if escape:
            escape = False
            continue
        if char == "\\" and in_string:
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return content[start : i + 1]
    return None


def iter_json_objects(content: str) -> Iterator[str]:
    """Yield JSON object candidates: fenced code blocks first, then raw objects.

    Raw objects are tried from every ``{`` that opens a balanced object, so
    stray braces in surrounding prose do not hide the real payload.
    """
    for block in _CODE_BLOCK_PATTERN.findall(content):
        block = block.strip()
        if block.startswith("{"):
            yield block

    start = content.find("{")
    while start != -1:
        candidate = _balanced_object(content, start)
        if candidate is not None:
            yield candidate
        start = content.find("{", start + 1)


def parse_json_candidates(text: str) -> List[Candidate]:
    """Parse the first embedded ``{"hypotheses": [...]}`` object, or return []."""
    for raw in iter_json_objects(text or ""):
        if '"hypotheses"' not in raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("hypotheses"), list):
            return clean_candidates(data["hypotheses"])
    return []


def parse_text_candidates(text: str) -> List[Candidate]:
    """Apply the plain-text strategies in order."""
    results: List[Candidate] = []

    # Strategy 1: bracketed markers
    for match in _BRACKET_PATTERN.finditer(text):
        results.append(_candidate(match.group(2), match.group(3)))

    # Strategy 2: markdown headers
    if not results:
        for match in _HEADER_PATTERN.finditer(text):
            results.append(_candidate(match.group(2), match.group(3)))

    # Strategy 3: numbered lists
    if not results:
        for match in _NUMBERED_PATTERN.finditer(text):
            title = match.group(2).strip()
            if _MIN_LIST_TITLE < len(title) < _MAX_LIST_TITLE:
                results.append(_candidate(title, match.group(3)))

    return [c for c in results if c.title]


def _candidate(title: str, summary: str) -> Candidate:
    return Candidate(
        title=title.strip().strip("*").strip()[:MAX_TITLE_LENGTH],
        summary=summary.strip()[:MAX_SUMMARY_LENGTH],
    )


def drop_repeated_titles(candidates: List[Candidate]) -> List[Candidate]:
    """Keep the first candidate for each case-insensitive title."""
    seen = set()
    unique = []
    for candidate in candidates:
        key = candidate.title.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def extract_candidates(
    text: str,
    *,
    structure: Optional[Callable[[str], str]] = None,
) -> List[Candidate]:
    """Extract candidates from divergent output.

    Args:
        text: Raw divergent research output
        structure: Optional generation callable. Its failures are logged and
            the text strategies are used instead.

    Returns:
        Candidates with repeated titles removed, in output order
    """
    candidates = parse_json_candidates(text)

    if not candidates and structure is not None:
        try:
            candidates = parse_json_candidates(structure(STRUCTURING_PROMPT.replace("{report}", text)))
        except Exception as exc:
            logger.warning("Structuring divergent output failed, falling back to text patterns: %s", exc)
            candidates = []

    if not candidates:
        candidates = parse_text_candidates(text)

    return drop_repeated_titles(candidates)
