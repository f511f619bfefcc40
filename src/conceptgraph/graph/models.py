from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

SourceKind = Literal["file", "url", "text"]
NodeKind = Literal["concept", "entity"]
SearchMode = Literal["auto", "global", "local"]

ENTITY_TYPES = ("PERSON", "ORGANIZATION", "CONCEPT", "TECHNOLOGY", "LOCATION")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_doc_id(source_kind: str) -> str:
    return f"{source_kind}_{time.time_ns()}_{secrets.token_hex(5)}"


@dataclass(frozen=True)
class Concept:
    """One extracted candidate: a locally computed concept or an LLM entity.

    Retrieval and merging only rely on ``name`` and ``frequency``.
    """

    name: str
    frequency: int
    kind: NodeKind = "concept"
    type: str | None = None
    description: str | None = None

    def attrs(self) -> dict[str, Any]:
        return {"kind": self.kind, "type": self.type, "description": self.description}


@dataclass(frozen=True)
class Relationship:
    source: str
    target: str
    type: str = "RELATED_TO"
    description: str = ""


@dataclass(frozen=True)
class Extraction:
    concepts: list[Concept]
    relationships: list[Relationship] = field(default_factory=list)
    strategy: str = "deterministic"


@dataclass(frozen=True)
class Document:
    doc_id: str
    name: str
    source_kind: str
    content: str
    size: int
    source: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ConceptNode:
    name: str
    frequency: int
    kind: NodeKind = "concept"
    type: str | None = None
    description: str | None = None
    community: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class DocumentHit:
    document: Document
    relevance: int
    concepts: list[str]


@dataclass(frozen=True)
class CommunitySummary:
    name: str
    size: int
    members: list[str]


@dataclass(frozen=True)
class DocumentSummary:
    doc_id: str
    name: str
    concepts: int
    size: int
    source_kind: str
    strategy: str = "deterministic"


@dataclass(frozen=True)
class Answer:
    text: str
    mode: str
    concepts: list[ConceptNode] = field(default_factory=list)
    documents: list[DocumentHit] = field(default_factory=list)
    excerpt: str | None = None
    communities: list[CommunitySummary] = field(default_factory=list)
    # Matched concept name -> strongest RELATED_TO neighbors.
    connected: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.text,
            "mode": self.mode,
            "excerpt": self.excerpt,
            "concepts": [
                {
                    "name": c.name,
                    "frequency": c.frequency,
                    "type": c.type,
                    "kind": c.kind,
                    "connected": list(self.connected.get(c.name, [])),
                }
                for c in self.concepts
            ],
            "documents": [
                {
                    "name": h.document.name,
                    "type": h.document.source_kind,
                    "relevance": h.relevance,
                    "concepts": list(h.concepts),
                }
                for h in self.documents
            ],
            "communities": [{"name": c.name, "size": c.size, "members": list(c.members)} for c in self.communities],
        }
