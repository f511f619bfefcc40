"""KnowledgeGraph: the components wired together behind one shared graph.

Ingestion, queries and community detection run concurrently under shared
access; ``clear`` takes exclusive access for its whole duration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import httpx

from .chat.enrich import OllamaEnricher
from .chat.llm import OllamaChatClient
from .config import Settings
from .graph.build import GraphBuilder
from .graph.community import CommunityDetector
from .graph.extract import ConceptExtractor
from .graph.locks import ReadWriteLock
from .graph.models import Answer, CommunitySummary, DocumentSummary
from .graph.query import Retriever
from .graph.sqlite_graph import SqliteGraphStore
from .graph.store import GraphStore, MemoryGraphStore
from .graph.strategies import DeterministicStrategy, EnrichmentStrategy, ExtractionChain, ExtractionStrategy
from .graph.tokenize import Tokenizer
from .ingest.runner import IngestOptions, SourceResult, ingest_sources


class KnowledgeGraph:
    def __init__(
        self,
        *,
        store: GraphStore,
        builder: GraphBuilder | None = None,
        detector: CommunityDetector | None = None,
        retriever: Retriever | None = None,
        ingest_options: IngestOptions | None = None,
    ):
        self.store = store
        self.builder = builder or GraphBuilder(store=store)
        self.detector = detector or CommunityDetector(store=store)
        self.retriever = retriever or Retriever(store=store)
        self.ingest_options = ingest_options or IngestOptions()
        self._rw = ReadWriteLock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        store: GraphStore | None = None,
        enricher: Any = None,
    ) -> "KnowledgeGraph":
        settings = settings or Settings()
        if store is None:
            store = SqliteGraphStore(settings.db_path) if settings.db_path else MemoryGraphStore()

        if enricher is None and settings.enrich:
            client = OllamaChatClient(
                base_url=settings.ollama_base_url,
                model=settings.ollama_model,
                timeout_s=settings.enrich_timeout_s,
                options={"temperature": 0.0},
            )
            enricher = OllamaEnricher(client=client)

        tokenizer = Tokenizer(stem=settings.stem)
        extractor = ConceptExtractor(tokenizer=tokenizer, max_concepts=settings.max_concepts, phrases=settings.phrases)
        strategies: list[ExtractionStrategy] = []
        if enricher is not None:
            strategies.append(EnrichmentStrategy(enricher, timeout_s=settings.enrich_timeout_s))
        strategies.append(DeterministicStrategy(extractor))

        return cls(
            store=store,
            builder=GraphBuilder(
                store=store,
                extractor=ExtractionChain(strategies),
                max_corpus_bytes=settings.max_corpus_bytes,
            ),
            detector=CommunityDetector(store=store),
            retriever=Retriever(
                store=store,
                tokenizer=tokenizer,
                summarizer=enricher,
                summarize_timeout_s=settings.enrich_timeout_s,
            ),
            ingest_options=IngestOptions(
                max_source_bytes=settings.max_source_bytes,
                fetch_timeout_s=settings.fetch_timeout_s,
            ),
        )

    async def ingest_document(
        self, name: str, content: str, source_kind: str = "text", *, source: str | None = None
    ) -> DocumentSummary:
        async with self._rw.shared():
            return await self.builder.ingest_document(name, content, source_kind, source=source)

    async def ingest_sources(
        self,
        *,
        files: Iterable[str | Path] = (),
        urls: Iterable[str] = (),
        clear: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> list[SourceResult]:
        o = self.ingest_options
        options = IngestOptions(max_source_bytes=o.max_source_bytes, fetch_timeout_s=o.fetch_timeout_s, clear=clear)
        return await ingest_sources(self, files=files, urls=urls, options=options, transport=transport)

    async def clear(self) -> None:
        async with self._rw.exclusive():
            await self.builder.clear()

    async def detect_communities(self) -> int:
        async with self._rw.shared():
            return await self.detector.detect()

    async def list_communities(self, *, limit: int = 10, sample_size: int = 5) -> list[CommunitySummary]:
        async with self._rw.shared():
            return await self.detector.summaries(limit=limit, sample_size=sample_size)

    async def query(self, question: str, mode: str = "auto") -> Answer:
        async with self._rw.shared():
            return await self.retriever.query(question, mode)

    async def stats(self, *, top: int = 10) -> dict[str, Any]:
        async with self._rw.shared():
            s = self.store
            nodes = await s.list_concepts()
            nodes.sort(key=lambda n: (-n.frequency, n.name))
            types: dict[str, int] = {}
            for n in nodes:
                types[n.type or "UNTYPED"] = types.get(n.type or "UNTYPED", 0) + 1
            documents = await s.count_nodes_by_label("document")
            total_size = await s.total_document_size()
            return {
                "documents": documents,
                "concepts": await s.count_nodes_by_label("concept"),
                "entities": await s.count_nodes_by_label("entity"),
                "contains": await s.count_edges_by_type("contains"),
                "relationships": await s.count_edges_by_type("related_to"),
                "communities": len({n.community for n in nodes if n.community is not None}),
                "total_size": total_size,
                "avg_size": (total_size / documents) if documents else 0,
                "types": dict(sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))),
                "top": [{"name": n.name, "type": n.type, "frequency": n.frequency} for n in nodes[:top]],
            }

    async def close(self) -> None:
        await self.store.close()
