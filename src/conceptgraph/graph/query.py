from __future__ import annotations

import asyncio
import logging

from ..errors import StoreError
from .models import Answer, CommunitySummary, ConceptNode, DocumentHit
from .store import GraphStore
from .tokenize import Tokenizer, split_sentences, words

logger = logging.getLogger(__name__)

# Matched as whole words; plural forms are listed explicitly.
GLOBAL_INDICATORS = frozenset(
    "overall general compare analyze overview overviews summary summaries trend trends pattern patterns".split()
)
LOCAL_INDICATORS = frozenset("specific detail details who what when where how".split())

NEED_SPECIFIC = "Please provide a more specific question with meaningful terms."
NO_CONCEPTS = "I couldn't find any relevant concepts in the knowledge graph for your question."
NO_DOCUMENTS = "No documents found containing the relevant concepts."
SEARCH_FAILED = "Error occurred while searching the knowledge graph."

NEIGHBOR_LIMIT = 3


def choose_mode(question: str) -> str:
    ws = set(words(question))
    global_score = len(ws & GLOBAL_INDICATORS)
    local_score = len(ws & LOCAL_INDICATORS)
    return "global" if global_score > local_score else "local"


def score_sentence(sentence: str, terms: list[str], concept_names: list[str]) -> float:
    s = sentence.lower()
    score: float = sum(2 for t in terms if t in s)
    score += sum(1 for name in concept_names if name.lower() in s)
    if score > 2:
        score *= 1.5
    return score


def best_excerpt(
    docs: list[DocumentHit],
    terms: list[str],
    concept_names: list[str],
    *,
    min_sentence_chars: int = 20,
    min_excerpt_chars: int = 30,
) -> str | None:
    best, best_score = None, 0.0
    for hit in docs:
        for sentence in split_sentences(hit.document.content):
            if len(sentence) < min_sentence_chars:
                continue
            score = score_sentence(sentence, terms, concept_names)
            # Strictly greater: on ties the earlier sentence wins.
            if score > best_score and len(sentence) >= min_excerpt_chars:
                best, best_score = sentence, score
    return best


def global_fallback(communities: list[CommunitySummary]) -> str:
    lines = [f"Global overview: Found {len(communities)} communities in the knowledge graph:"]
    for c in communities:
        lines.append(f"• {c.name}: {c.size} entities (examples: {', '.join(c.members)})")
    return "\n".join(lines)


class Retriever:
    def __init__(
        self,
        *,
        store: GraphStore,
        tokenizer: Tokenizer | None = None,
        summarizer=None,
        summarize_timeout_s: float = 60.0,
        concept_limit: int = 15,
        document_limit: int = 5,
        community_limit: int = 10,
    ):
        self.store = store
        self.tokenizer = tokenizer or Tokenizer(stem=True)
        # Any object with `summarize_communities(question, summaries) -> str`.
        self.summarizer = summarizer
        self.summarize_timeout_s = float(summarize_timeout_s)
        self.concept_limit = int(concept_limit)
        self.document_limit = int(document_limit)
        self.community_limit = int(community_limit)

    def key_terms(self, question: str) -> list[str]:
        return list(dict.fromkeys(self.tokenizer.normalize(question)))

    async def query(self, question: str, mode: str = "auto") -> Answer:
        if mode not in {"auto", "global", "local"}:
            raise ValueError(f"Unknown search mode: {mode}")
        if mode == "auto":
            mode = choose_mode(question)

        try:
            if mode == "global":
                return await self.global_search(question)
            return await self.local_search(question)
        except (StoreError, OSError):
            logger.exception("Search failed for %r", question)
            return Answer(text=SEARCH_FAILED, mode=mode)

    async def find_concepts(self, terms: list[str]) -> list[ConceptNode]:
        found = await self.store.find_concepts_by_substring(
            terms, kind="entity", include_description=True, limit=self.concept_limit
        )
        if found:
            return found
        logger.debug("No entities matched %s, falling back to concept search", terms)
        return await self.store.find_concepts_by_substring(terms, kind="concept", limit=self.concept_limit)

    async def connected(self, names: list[str]) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for name in names:
            out[name] = [n for n, _ in await self.store.neighbors(name, limit=NEIGHBOR_LIMIT)]
        return out

    async def local_search(self, question: str) -> Answer:
        terms = self.key_terms(question)
        if not terms:
            return Answer(text=NEED_SPECIFIC, mode="local")

        concepts = await self.find_concepts(terms)
        if not concepts:
            return Answer(text=NO_CONCEPTS, mode="local")

        names = [c.name for c in concepts]
        connected = await self.connected(names[:5])
        docs = await self.store.find_documents_by_concepts(names, limit=self.document_limit)
        if not docs:
            return Answer(text=NO_DOCUMENTS, mode="local", concepts=concepts, connected=connected)

        excerpt = best_excerpt(docs, terms, names)
        if excerpt:
            text = f"Based on your documents: {excerpt}"
        else:
            text = (
                f"Found relevant concepts ({', '.join(names[:5])}) but couldn't extract a specific answer. "
                "Try rephrasing your question."
            )
        return Answer(
            text=text, mode="local", concepts=concepts, documents=docs, excerpt=excerpt, connected=connected
        )

    async def global_search(self, question: str) -> Answer:
        communities = await self.store.list_communities(limit=self.community_limit)
        if self.summarizer is not None and communities:
            try:
                text = await asyncio.wait_for(
                    self.summarizer.summarize_communities(question, communities),
                    timeout=self.summarize_timeout_s,
                )
                return Answer(text=text, mode="global", communities=communities)
            except Exception as e:
                logger.warning("Community summarization failed, using overview listing: %s", e)
        return Answer(text=global_fallback(communities), mode="global", communities=communities)
