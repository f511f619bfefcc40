"""Graph mutation: merge one document's concepts into the shared graph."""

from __future__ import annotations

import asyncio
import logging
from itertools import combinations

from ..errors import InputTooLargeError, StoreError, mb
from .models import Concept, Document, DocumentSummary, Extraction, new_doc_id
from .store import GraphStore
from .strategies import DeterministicStrategy, ExtractionChain

logger = logging.getLogger(__name__)

DEFAULT_MAX_CORPUS_BYTES = 100 * 1024 * 1024


def cooccurrence_weight(a: Concept, b: Concept) -> int:
    # Every co-occurring pair adds the smaller of the two local counts.
    return min(a.frequency, b.frequency)


def dedupe(concepts: list[Concept]) -> list[Concept]:
    out: dict[str, Concept] = {}
    for c in concepts:
        name = c.name.strip()
        if not name or c.frequency <= 0 or name in out:
            continue
        out[name] = c
    return list(out.values())


class GraphBuilder:
    def __init__(
        self,
        *,
        store: GraphStore,
        extractor: ExtractionChain | None = None,
        max_corpus_bytes: int = DEFAULT_MAX_CORPUS_BYTES,
    ):
        self.store = store
        self.extractor = extractor or ExtractionChain([DeterministicStrategy()])
        self.max_corpus_bytes = int(max_corpus_bytes)
        # Size check and document creation happen together.
        self._admit = asyncio.Lock()

    async def ingest_document(
        self,
        name: str,
        content: str,
        source_kind: str = "text",
        *,
        source: str | None = None,
    ) -> DocumentSummary:
        size = len(content.encode("utf-8"))
        # Cheap pre-check so oversized input never reaches extraction.
        await self._check_size(size)

        extraction = await self.extractor.extract(content)
        concepts = dedupe(extraction.concepts)

        doc = Document(
            doc_id=new_doc_id(source_kind),
            name=name,
            source_kind=source_kind,
            source=source,
            content=content,
            size=size,
        )
        async with self._admit:
            await self._check_size(size)
            await self.store.create_document(doc)

        try:
            for c in concepts:
                await self.store.upsert_concept(c.name, c.frequency, c.attrs())
                await self.store.create_contains_edge(doc.doc_id, c.name, c.frequency)
            edges = await self._link(concepts, extraction)
        except StoreError:
            # Writes are not transactional; the document node and any merged concepts stay.
            logger.error("Partial write for %s (%s)", name, doc.doc_id)
            raise

        logger.info(
            "Stored %s with %d concepts and %d relationships (%s)",
            name,
            len(concepts),
            edges,
            extraction.strategy,
        )
        return DocumentSummary(
            doc_id=doc.doc_id,
            name=name,
            concepts=len(concepts),
            size=size,
            source_kind=source_kind,
            strategy=extraction.strategy,
        )

    async def _check_size(self, size: int) -> None:
        current = await self.store.total_document_size()
        if current + size > self.max_corpus_bytes:
            raise InputTooLargeError(
                f"Size limit exceeded: current {mb(current)} + new {mb(size)} > limit {mb(self.max_corpus_bytes)}",
                size=size,
                limit=self.max_corpus_bytes,
            )

    async def _link(self, concepts: list[Concept], extraction: Extraction) -> int:
        by_name = {c.name: c for c in concepts}
        if extraction.relationships:
            # Explicit relationships replace blanket co-occurrence.
            pairs = {
                tuple(sorted((r.source, r.target)))
                for r in extraction.relationships
                if r.source in by_name and r.target in by_name and r.source != r.target
            }
            links = [(by_name[a], by_name[b]) for a, b in sorted(pairs)]
        else:
            links = list(combinations(concepts, 2))

        for a, b in links:
            await self.store.upsert_related_edge(a.name, b.name, cooccurrence_weight(a, b))
        return len(links)

    async def clear(self) -> None:
        await self.store.clear_all()
        logger.info("Knowledge graph cleared")
