"""Offline generation provider that answers by quoting the grounding prompt."""

from __future__ import annotations

import re

from ragline.core.errors import ProviderError

_SOURCE_RE = re.compile(r"^\[(\d+)\]")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]?")
_WORD_RE = re.compile(r"\w+")
_STOPWORDS = frozenset(
    "a an and are as at be by does do for from how in is it of on or the this to what when where which who why with".split()
)


class ExtractiveGenerationProvider:
    """Picks the quoted source sentences sharing the most words with the question.

    Expects the prompt layout produced by ``ragline.synthesis.prompt``: numbered
    source headers, quoted ``> `` lines, and a ``Question:`` line.
    """

    name = "extractive"

    def __init__(self, max_sentences: int = 2) -> None:
        self.max_sentences = max_sentences

    def generate(self, prompt: str, model: str) -> str:
        question, passages = _parse_prompt(prompt)
        if not passages:
            raise ProviderError("Prompt carries no quoted sources")
        question_terms = _terms(question)

        scored: list[tuple[int, int, str, int]] = []
        position = 0
        for source_number, passage in passages:
            for match in _SENTENCE_RE.finditer(passage):
                sentence = match.group().strip()
                if not sentence:
                    continue
                overlap = len(question_terms & _terms(sentence))
                scored.append((overlap, position, sentence, source_number))
                position += 1

        best = sorted((item for item in scored if item[0] > 0), key=lambda item: (-item[0], item[1]))
        chosen = best[: self.max_sentences] or scored[:1]
        chosen.sort(key=lambda item: item[1])
        return " ".join(f"{sentence} [{number}]" for _, _, sentence, number in chosen)


def _parse_prompt(prompt: str) -> tuple[str, list[tuple[int, str]]]:
    question = ""
    passages: dict[int, list[str]] = {}
    current: int | None = None
    for line in prompt.splitlines():
        header = _SOURCE_RE.match(line)
        if header:
            current = int(header.group(1))
            passages.setdefault(current, [])
        elif line.startswith("> ") and current is not None:
            passages[current].append(line[2:])
        elif line.startswith("Question:"):
            question = line[len("Question:") :].strip()
    return question, [(number, " ".join(lines)) for number, lines in passages.items() if lines]


def _terms(text: str) -> set[str]:
    return {word for word in _WORD_RE.findall(text.lower()) if word not in _STOPWORDS}


__all__ = ["ExtractiveGenerationProvider"]
