from __future__ import annotations

import re
from collections import Counter
from typing import Iterable

from .models import Concept
from .tokenize import Tokenizer, words

_SENTENCE_RE = re.compile(r"[.!?]+")


def norm_entity(name: str) -> str:
    # Normalize for stable matching.
    return re.sub(r"\s+", " ", name.strip()).lower()


def _ranked(counts: Counter[str], limit: int) -> list[tuple[str, int]]:
    # sorted() is stable and Counter keeps first-seen order, so ties rank by
    # first occurrence in the text.
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[: max(0, int(limit))]


class ConceptExtractor:
    """Frequency-ranked concepts from normalized tokens (plus 2-word phrases).

    Single-word concepts come first, then phrase concepts; each list is sorted
    by descending frequency with ties kept in first-occurrence order.
    """

    def __init__(
        self,
        *,
        tokenizer: Tokenizer | None = None,
        max_concepts: int = 50,
        phrases: bool = True,
        max_phrases: int = 10,
        min_phrase_chars: int = 9,
        min_phrase_freq: int = 2,
    ):
        self.tokenizer = tokenizer or Tokenizer()
        self.max_concepts = int(max_concepts)
        self.phrases = bool(phrases)
        self.max_phrases = int(max_phrases)
        self.min_phrase_chars = int(min_phrase_chars)
        self.min_phrase_freq = int(min_phrase_freq)

    def extract(self, tokens: Iterable[str]) -> list[Concept]:
        counts = Counter(tokens)
        # Rare long words are kept as likely-meaningful terms.
        kept = Counter({t: n for t, n in counts.items() if n > 1 or len(t) > 4})
        return [Concept(name=t, frequency=n) for t, n in _ranked(kept, self.max_concepts)]

    def extract_phrases(self, text: str) -> list[Concept]:
        stop = self.tokenizer.stop_words
        counts: Counter[str] = Counter()
        for sentence in _SENTENCE_RE.split(text or ""):
            ws = words(sentence)
            for a, b in zip(ws, ws[1:]):
                if a in stop or b in stop:
                    continue
                phrase = f"{a} {b}"
                if len(phrase) < self.min_phrase_chars or phrase[0].isdigit():
                    continue
                counts[phrase] += 1

        kept = Counter({p: n for p, n in counts.items() if n >= self.min_phrase_freq})
        return [Concept(name=p, frequency=n) for p, n in _ranked(kept, self.max_phrases)]

    def extract_text(self, text: str) -> list[Concept]:
        concepts = self.extract(self.tokenizer.normalize(text))
        if not self.phrases:
            return concepts

        seen = {c.name for c in concepts}
        return concepts + [p for p in self.extract_phrases(text) if p.name not in seen]
