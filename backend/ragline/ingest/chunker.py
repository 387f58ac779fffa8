"""Chunking utilities.

Content is first cut into contiguous units (paragraphs, then sentences, then
hard character cuts for oversized sentences). Units are packed greedily into
chunks of at most ``max_size`` characters; consecutive chunks share trailing
units worth up to ``overlap`` characters. Because units are contiguous the
union of all spans is the whole content.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Sequence

from ragline.core.errors import ConfigurationError
from ragline.models.entities import Chunk, TextSpan
from ragline.utils.ids import stable_id

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(slots=True)
class Segment:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def validate_chunking(max_size: int, overlap: int) -> None:
    """Raise ``ConfigurationError`` unless ``0 <= overlap < max_size``."""
    if max_size <= 0:
        raise ConfigurationError(f"chunk max_size must be positive, got {max_size}")
    if overlap < 0:
        raise ConfigurationError(f"chunk overlap must not be negative, got {overlap}")
    if overlap >= max_size:
        raise ConfigurationError(
            f"chunk overlap ({overlap}) must be smaller than max_size ({max_size})"
        )


def chunk_text(content: str, max_size: int, overlap: int) -> list[TextSpan]:
    """Split ``content`` into ordered, overlapping spans of at most ``max_size`` chars."""
    validate_chunking(max_size, overlap)
    if not content:
        return []

    units: list[Segment] = []
    for paragraph in _split(content, Segment(0, len(content)), _PARAGRAPH_RE):
        units.extend(_shrink_segment(content, paragraph, max_size))

    spans: list[TextSpan] = []
    current: list[Segment] = []
    current_size = 0
    for unit in units:
        if current and current_size + unit.length > max_size:
            spans.append(_finalize_span(content, current))
            current = _apply_overlap(current, overlap)
            while current and _total(current) + unit.length > max_size:
                current.pop(0)
            current_size = _total(current)
        current.append(unit)
        current_size += unit.length

    if current:
        spans.append(_finalize_span(content, current))
    return spans


def _split(content: str, segment: Segment, pattern: re.Pattern[str]) -> Iterator[Segment]:
    """Cut ``segment`` after each separator match; separators stay with the left piece."""
    cursor = segment.start
    for match in pattern.finditer(content, segment.start, segment.end):
        if match.end() >= segment.end:
            break
        if match.end() > cursor:
            yield Segment(cursor, match.end())
            cursor = match.end()
    if cursor < segment.end:
        yield Segment(cursor, segment.end)


def _shrink_segment(content: str, segment: Segment, max_size: int) -> list[Segment]:
    if segment.length <= max_size:
        return [segment]
    sentences = list(_split(content, segment, _SENTENCE_RE))
    if len(sentences) > 1:
        shrunk: list[Segment] = []
        for sentence in sentences:
            shrunk.extend(_shrink_segment(content, sentence, max_size))
        return shrunk
    return _hard_cut(content, segment, max_size)


def _hard_cut(content: str, segment: Segment, max_size: int) -> list[Segment]:
    pieces: list[Segment] = []
    cursor = segment.start
    while cursor < segment.end:
        limit = min(segment.end, cursor + max_size)
        cut = limit
        if limit < segment.end:
            # back off to whitespace when it keeps at least half the window
            space = content.rfind(" ", cursor, limit)
            if space >= cursor + max_size // 2:
                cut = space + 1
        pieces.append(Segment(cursor, cut))
        cursor = cut
    return pieces


def _apply_overlap(segments: Sequence[Segment], overlap: int) -> list[Segment]:
    """Trailing proper suffix of ``segments`` no longer than ``overlap`` chars."""
    if overlap <= 0 or len(segments) < 2:
        return []
    retained: list[Segment] = []
    budget = 0
    for segment in reversed(segments[1:]):
        if budget + segment.length > overlap:
            break
        retained.append(segment)
        budget += segment.length
    return list(reversed(retained))


def _finalize_span(content: str, segments: Sequence[Segment]) -> TextSpan:
    start = segments[0].start
    end = segments[-1].end
    return TextSpan(start=start, end=end, text=content[start:end])


def _total(segments: Sequence[Segment]) -> int:
    return sum(segment.length for segment in segments)


def chunk_id_for(document_id: str, ordinal: int, span: TextSpan) -> str:
    return stable_id("chk", document_id, ordinal, span.start, span.end)


def build_chunks(document_id: str, spans: Sequence[TextSpan]) -> list[Chunk]:
    """Attach document identity and stable ids to raw spans."""
    return [
        Chunk(
            id=chunk_id_for(document_id, ordinal, span),
            document_id=document_id,
            ordinal=ordinal,
            start_char=span.start,
            end_char=span.end,
            text=span.text,
        )
        for ordinal, span in enumerate(spans)
    ]


__all__ = ["chunk_text", "validate_chunking", "build_chunks", "chunk_id_for"]
