"""Community labels for global search.

Labels are recomputed from scratch on every run and overwrite the previous
ones. Connected components over RELATED_TO come first; bucketing by type tag
is the fallback.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

import networkx as nx

from .models import CommunitySummary
from .store import GraphStore
from .strategies import first_success

logger = logging.getLogger(__name__)

TYPE_BUCKETS = {
    "PERSON": "people",
    "ORGANIZATION": "organizations",
    "TECHNOLOGY": "technologies",
    "LOCATION": "locations",
}
DEFAULT_BUCKET = "concepts"


class CommunityStrategy(Protocol):
    name: str

    async def assign(self, store: GraphStore) -> dict[str, str]: ...


class ComponentStrategy:
    name = "components"

    async def assign(self, store: GraphStore) -> dict[str, str]:
        g = nx.Graph()
        g.add_nodes_from(n.name for n in await store.list_concepts())
        g.add_edges_from((a, b) for a, b, w in await store.list_related_edges() if w > 0)

        # Largest first, then by smallest member, so labels are stable across runs.
        components = sorted((sorted(c) for c in nx.connected_components(g)), key=lambda c: (-len(c), c[0]))
        labels: dict[str, str] = {}
        for idx, members in enumerate(components):
            for name in members:
                labels[name] = f"component-{idx}"
        return labels


class CategoryStrategy:
    name = "categories"

    async def assign(self, store: GraphStore) -> dict[str, str]:
        return {n.name: TYPE_BUCKETS.get((n.type or "").upper(), DEFAULT_BUCKET) for n in await store.list_concepts()}


class CommunityDetector:
    def __init__(self, *, store: GraphStore, strategies: Sequence[CommunityStrategy] | None = None):
        self.store = store
        self.strategies = list(strategies or [ComponentStrategy(), CategoryStrategy()])

    async def detect(self) -> int:
        strategy, labels = await first_success(self.strategies, lambda s: s.assign(self.store), what="community")
        await self.store.label_communities(labels)
        count = len(set(labels.values()))
        logger.info("Detected %d communities over %d nodes (%s)", count, len(labels), strategy.name)
        return count

    async def summaries(self, *, limit: int = 10, sample_size: int = 5) -> list[CommunitySummary]:
        return await self.store.list_communities(limit=limit, sample_size=sample_size)
