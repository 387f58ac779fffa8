"""Grounding prompt construction."""

from __future__ import annotations

from typing import Sequence

from ragline.models.entities import SearchResult

INSTRUCTIONS = (
    "Answer the question using only the numbered sources below. "
    "Cite the sources you rely on as [n]. "
    "If the sources do not contain the answer, say that you do not know."
)


def build_prompt(query: str, results: Sequence[SearchResult], chunks_per_source: int = 2) -> str:
    """Quote the top chunks of each result under a numbered, attributed header."""
    lines = [INSTRUCTIONS, "", "Sources:"]
    for number, result in enumerate(results, start=1):
        lines.append(f"[{number}] {result.document.filename} (document {result.document.id})")
        for hit in result.chunks[:chunks_per_source]:
            for text_line in hit.chunk.text.strip().splitlines():
                stripped = text_line.strip()
                if stripped:
                    lines.append(f"> {stripped}")
        lines.append("")
    lines.append(f"Question: {' '.join(query.split())}")
    lines.append("Answer:")
    return "\n".join(lines)


__all__ = ["build_prompt", "INSTRUCTIONS"]
