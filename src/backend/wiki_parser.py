"""Turn free-form backend text into a normalized list of wiki sections.

Extraction is an ordered list of strategies; the first one that yields valid
JSON wins and the rest are not tried. Each failed attempt is kept as
``(strategy, reason)`` so an invalid response can be traced afterwards.
"""
from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, Union

from errors import GenerationOutputInvalid
from models import Section

_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_NON_SLUG = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ParseSuccess:
    value: Any
    strategy: str


@dataclass(frozen=True)
class ParseFailure:
    attempts: list[tuple[str, str]] = field(default_factory=list)

    def describe(self) -> str:
        return "; ".join(f"{strategy}: {reason}" for strategy, reason in self.attempts)


ParseResult = Union[ParseSuccess, ParseFailure]
Strategy = Callable[[str], Any]


def _parse_direct(text: str) -> Any:
    return json.loads(text)


def _parse_fenced(text: str) -> Any:
    match = _FENCED_BLOCK.search(text)
    if not match:
        raise ValueError("no fenced block")
    return json.loads(match.group(1).strip())


def _parse_bracket_slice(text: str) -> Any:
    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        raise ValueError("no opening bracket")
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        raise ValueError(f"no {closer!r} after position {start}")
    return json.loads(text[start:end + 1])


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("direct", _parse_direct),
    ("fenced", _parse_fenced),
    ("bracket_slice", _parse_bracket_slice),
)


def first_success(strategies: Sequence[tuple[str, Strategy]]) -> Callable[[str], ParseResult]:
    """Combine strategies into one parser that stops at the first success."""

    def parse(text: str) -> ParseResult:
        attempts: list[tuple[str, str]] = []
        for name, strategy in strategies:
            try:
                return ParseSuccess(value=strategy(text), strategy=name)
            except ValueError as exc:
                attempts.append((name, str(exc)))
        return ParseFailure(attempts=attempts)

    return parse


extract_json = first_success(DEFAULT_STRATEGIES)


def parse_json_from_text(text: str) -> Any:
    """Return the JSON value embedded in ``text`` or raise GenerationOutputInvalid."""
    trimmed = (text or "").strip()
    result = extract_json(trimmed)
    if isinstance(result, ParseFailure):
        raise GenerationOutputInvalid(
            f"Non-JSON response ({result.describe()}): {trimmed[:500]}",
            attempts=result.attempts,
        )
    return result.value


def slugify(text: str) -> str:
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _NON_SLUG.sub("-", ascii_text.lower()).strip("-")


def _humanize(section_id: str) -> str:
    return re.sub(r"[-_]+", " ", section_id).strip().title()


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return ""


def _normalize_content(value: Any, where: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return "\n\n".join(value)
    raise GenerationOutputInvalid(f"Section {where} has non-text content")


def _normalize_section(item: Any, where: str, forced_id: str | None = None) -> Section:
    if not isinstance(item, dict):
        raise GenerationOutputInvalid(f"Section {where} is not an object")

    title = _as_text(item.get("title"))
    section_id = forced_id or _as_text(item.get("id")) or slugify(title)
    if not section_id:
        raise GenerationOutputInvalid(f"Section {where} has neither id nor title")

    children_raw = item.get("children")
    if children_raw is not None and not isinstance(children_raw, list):
        raise GenerationOutputInvalid(f"Section {where} has non-list children")

    children = [
        _normalize_section(child, f"{where}.{index}") for index, child in enumerate(children_raw or [])
    ]
    return Section(
        id=section_id,
        title=title or _humanize(section_id),
        content=_normalize_content(item.get("content"), where),
        children=children or None,
    )


def normalize_sections(data: Any) -> list[Section]:
    """Accept a section list, a ``{"sections": [...]}`` wrapper, or a legacy mapping."""
    if isinstance(data, list):
        sections = [_normalize_section(item, str(index)) for index, item in enumerate(data)]
    elif isinstance(data, dict) and isinstance(data.get("sections"), list):
        sections = [_normalize_section(item, str(index)) for index, item in enumerate(data["sections"])]
    elif isinstance(data, dict):
        # Legacy shape: {"overview": {"title": ..., "content": ...}, ...}
        sections = [_normalize_section(value, str(key), forced_id=str(key)) for key, value in data.items()]
    else:
        raise GenerationOutputInvalid(f"Expected a JSON array or object, got {type(data).__name__}")

    if not sections:
        raise GenerationOutputInvalid("Response contained no sections")
    return sections


def parse_wiki_document(text: str) -> list[Section]:
    return normalize_sections(parse_json_from_text(text))
