"""Graph repository interface and the in-memory implementation.

Everything outside the mutation and retrieval engines talks to the graph
through these operations; no component builds store-specific queries.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Any, Iterable, Literal, Protocol

from ..errors import StoreError
from .locks import KeyedLock
from .models import CommunitySummary, ConceptNode, Document, DocumentHit

NodeLabel = Literal["document", "concept", "entity", "node"]
EdgeType = Literal["contains", "related_to"]


def edge_key(a: str, b: str) -> tuple[str, str]:
    # RELATED_TO is undirected: store each pair once, in sorted order.
    return (a, b) if a <= b else (b, a)


def merge_attrs(node: ConceptNode, attrs: dict[str, Any] | None) -> None:
    """Apply extraction attributes to an existing node (frequency excluded)."""
    if not attrs:
        return
    if attrs.get("kind") == "entity" and node.kind != "entity":
        node.kind = "entity"
        node.type = attrs.get("type") or node.type
        node.description = attrs.get("description") or node.description
        return
    if not node.type and attrs.get("type"):
        node.type = attrs["type"]
    if not node.description and attrs.get("description"):
        node.description = attrs["description"]


def matches(node: ConceptNode, terms: list[str], *, include_description: bool) -> bool:
    name = node.name.lower()
    desc = (node.description or "").lower() if include_description else ""
    return any(t in name or (desc and t in desc) for t in terms)


class GraphStore(Protocol):
    """Backend failures surface as `StoreError`; callers also treat `OSError` as a backend failure."""

    async def create_document(self, doc: Document) -> None: ...

    async def upsert_concept(
        self, name: str, delta_frequency: int, attrs: dict[str, Any] | None = None
    ) -> ConceptNode: ...

    async def create_contains_edge(self, doc_id: str, concept_name: str, weight: int) -> None: ...

    async def upsert_related_edge(self, name_a: str, name_b: str, delta_weight: int) -> int: ...

    async def clear_all(self) -> None: ...

    async def find_concepts_by_substring(
        self,
        terms: list[str],
        *,
        kind: str | None = None,
        include_description: bool = False,
        limit: int = 15,
    ) -> list[ConceptNode]: ...

    async def find_documents_by_concepts(self, names: list[str], *, limit: int = 5) -> list[DocumentHit]: ...

    async def label_community(self, concept_name: str, label: str) -> None: ...

    async def label_communities(self, labels: dict[str, str]) -> None: ...

    async def list_communities(self, *, limit: int = 10, sample_size: int = 5) -> list[CommunitySummary]: ...

    async def count_nodes_by_label(self, label: NodeLabel) -> int: ...

    async def count_edges_by_type(self, edge_type: EdgeType) -> int: ...

    async def get_concept(self, name: str) -> ConceptNode | None: ...

    async def get_related_weight(self, name_a: str, name_b: str) -> int | None: ...

    async def list_concepts(self) -> list[ConceptNode]: ...

    async def list_related_edges(self) -> list[tuple[str, str, int]]: ...

    async def neighbors(self, name: str, *, limit: int = 10) -> list[tuple[str, int]]: ...

    async def total_document_size(self) -> int: ...

    async def close(self) -> None: ...


def summarize_communities(
    nodes: Iterable[ConceptNode], *, limit: int, sample_size: int
) -> list[CommunitySummary]:
    groups: dict[str, list[ConceptNode]] = defaultdict(list)
    for n in nodes:
        if n.community is not None:
            groups[n.community].append(n)

    out = []
    for label, members in groups.items():
        members.sort(key=lambda n: (-n.frequency, n.name))
        out.append(CommunitySummary(name=label, size=len(members), members=[m.name for m in members[:sample_size]]))
    out.sort(key=lambda c: (-c.size, c.name))
    return out[: max(0, int(limit))]


class MemoryGraphStore:
    """Process-local graph; counters are updated under a per-key lock."""

    def __init__(self) -> None:
        self._docs: dict[str, Document] = {}
        self._concepts: dict[str, ConceptNode] = {}
        self._contains: dict[str, dict[str, int]] = {}
        self._related: dict[tuple[str, str], int] = {}
        self._keys = KeyedLock()

    async def create_document(self, doc: Document) -> None:
        if doc.doc_id in self._docs:
            raise StoreError(f"Duplicate document id: {doc.doc_id}")
        self._docs[doc.doc_id] = doc
        self._contains[doc.doc_id] = {}

    async def upsert_concept(
        self, name: str, delta_frequency: int, attrs: dict[str, Any] | None = None
    ) -> ConceptNode:
        async with self._keys.hold(("concept", name)):
            node = self._concepts.get(name)
            if node is None:
                attrs = attrs or {}
                node = ConceptNode(
                    name=name,
                    frequency=int(delta_frequency),
                    kind=attrs.get("kind") or "concept",
                    type=attrs.get("type"),
                    description=attrs.get("description"),
                )
                self._concepts[name] = node
            else:
                node.frequency += int(delta_frequency)
                merge_attrs(node, attrs)
            return replace(node)

    async def create_contains_edge(self, doc_id: str, concept_name: str, weight: int) -> None:
        if doc_id not in self._docs:
            raise StoreError(f"Unknown document: {doc_id}")
        if concept_name not in self._concepts:
            raise StoreError(f"Unknown concept: {concept_name}")
        self._contains[doc_id][concept_name] = int(weight)

    async def upsert_related_edge(self, name_a: str, name_b: str, delta_weight: int) -> int:
        if name_a == name_b:
            return 0
        key = edge_key(name_a, name_b)
        async with self._keys.hold(("related", key)):
            w = self._related.get(key, 0) + max(0, int(delta_weight))
            self._related[key] = w
            return w

    async def clear_all(self) -> None:
        self._docs.clear()
        self._concepts.clear()
        self._contains.clear()
        self._related.clear()

    async def find_concepts_by_substring(
        self,
        terms: list[str],
        *,
        kind: str | None = None,
        include_description: bool = False,
        limit: int = 15,
    ) -> list[ConceptNode]:
        terms = [t.lower() for t in terms if t]
        if not terms:
            return []
        hits = [
            replace(n)
            for n in self._concepts.values()
            if (kind is None or n.kind == kind) and matches(n, terms, include_description=include_description)
        ]
        hits.sort(key=lambda n: (-n.frequency, n.name))
        return hits[: max(0, int(limit))]

    async def find_documents_by_concepts(self, names: list[str], *, limit: int = 5) -> list[DocumentHit]:
        wanted = set(names)
        hits: list[DocumentHit] = []
        for doc_id, edges in self._contains.items():
            matched = sorted(
                ((n, w) for n, w in edges.items() if n in wanted),
                key=lambda nw: (-nw[1], nw[0]),
            )
            if not matched:
                continue
            hits.append(
                DocumentHit(
                    document=self._docs[doc_id],
                    relevance=sum(w for _, w in matched),
                    concepts=[n for n, _ in matched],
                )
            )
        # dict order is insertion order, so equal relevance keeps older documents first.
        hits.sort(key=lambda h: h.relevance, reverse=True)
        return hits[: max(0, int(limit))]

    async def label_community(self, concept_name: str, label: str) -> None:
        node = self._concepts.get(concept_name)
        if node is not None:
            node.community = label

    async def label_communities(self, labels: dict[str, str]) -> None:
        for name, label in labels.items():
            await self.label_community(name, label)

    async def list_communities(self, *, limit: int = 10, sample_size: int = 5) -> list[CommunitySummary]:
        return summarize_communities(self._concepts.values(), limit=limit, sample_size=sample_size)

    async def count_nodes_by_label(self, label: NodeLabel) -> int:
        if label == "document":
            return len(self._docs)
        if label == "node":
            return len(self._concepts)
        return sum(1 for n in self._concepts.values() if n.kind == label)

    async def count_edges_by_type(self, edge_type: EdgeType) -> int:
        if edge_type == "contains":
            return sum(len(e) for e in self._contains.values())
        return len(self._related)

    async def get_concept(self, name: str) -> ConceptNode | None:
        node = self._concepts.get(name)
        return replace(node) if node is not None else None

    async def get_related_weight(self, name_a: str, name_b: str) -> int | None:
        return self._related.get(edge_key(name_a, name_b))

    async def list_concepts(self) -> list[ConceptNode]:
        return [replace(n) for n in self._concepts.values()]

    async def list_related_edges(self) -> list[tuple[str, str, int]]:
        return [(a, b, w) for (a, b), w in self._related.items()]

    async def neighbors(self, name: str, *, limit: int = 10) -> list[tuple[str, int]]:
        out = [(b if a == name else a, w) for (a, b), w in self._related.items() if name in (a, b)]
        out.sort(key=lambda nw: (-nw[1], nw[0]))
        return out[: max(0, int(limit))]

    async def total_document_size(self) -> int:
        return sum(d.size for d in self._docs.values())

    async def close(self) -> None:
        return None
