"""Text normalization shared by extraction and retrieval."""

from __future__ import annotations

import re
from functools import lru_cache

from nltk.stem import PorterStemmer


# Fixed English stop-word list. Membership is tested on lower-cased,
# unstemmed words.
STOP_WORDS: frozenset[str] = frozenset(
    """
    a about above after again against all also am an and another any are as at
    be been before being below between both but by can could did different do
    does doing down during each either every few for from further get had has
    have having he her here hers herself him himself his how however i if in
    into is it its itself just like made make many may me might more most much
    must my myself neither new next no nor not now of off old on once only or
    other our ours ourselves out over own part said same say she should since
    so some such than that the their theirs them themselves then there these
    they this those through thus till to too under until upon very was way we
    were what when where whether which while who whom whose why will with
    within without would yet you your yours yourself yourselves
    """.split()
)

_PUNCT_RE = re.compile(r"[^\w\s]+")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+|[\r\n]+")

_stemmer = PorterStemmer()


@lru_cache(maxsize=65536)
def stem_word(word: str) -> str:
    return _stemmer.stem(word)


def words(text: str) -> list[str]:
    """Lower-cased words with punctuation removed. No filtering."""
    return _PUNCT_RE.sub(" ", (text or "").lower()).split()


def split_sentences(text: str) -> list[str]:
    """Split on sentence terminators, keeping the terminator with its sentence."""
    return [s.strip() for s in _SENTENCE_END_RE.split(text or "") if s.strip()]


def is_noise(word: str) -> bool:
    return len(word) <= 2 or word.isdigit()


class Tokenizer:
    def __init__(self, *, stem: bool = True, stop_words: frozenset[str] | None = None):
        self.stem = bool(stem)
        self.stop_words = STOP_WORDS if stop_words is None else frozenset(stop_words)

    def normalize(self, text: str) -> list[str]:
        out: list[str] = []
        for w in words(text):
            if is_noise(w) or w in self.stop_words:
                continue
            out.append(stem_word(w) if self.stem else w)
        return out


def normalize(text: str, *, stem: bool = True) -> list[str]:
    return Tokenizer(stem=stem).normalize(text)
