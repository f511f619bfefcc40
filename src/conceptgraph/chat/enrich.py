"""LLM enrichment: richer entities/relationships and prose for global answers."""

from __future__ import annotations

import json
import re
from typing import Any

from ..graph.extract import norm_entity
from ..graph.models import ENTITY_TYPES, CommunitySummary, Concept, Extraction, Relationship
from .llm import ChatMessage, LLMError, OllamaChatClient


EXTRACT_PROMPT = """Extract entities and their relationships from this text. Return a JSON object with:
{{
  "entities": [{{"name": "entity name", "type": "PERSON|ORGANIZATION|CONCEPT|TECHNOLOGY|LOCATION", "description": "brief description"}}],
  "relationships": [{{"source": "entity1", "target": "entity2", "type": "RELATED_TO|WORKS_AT|PART_OF|USES", "description": "relationship description"}}]
}}

Text: {text}"""

SUMMARIZE_PROMPT = """Based on the knowledge graph communities below, answer this question: "{question}"

Communities in the knowledge graph:
{communities}

Provide a comprehensive answer based on patterns across the entire dataset."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def format_communities(summaries: list[CommunitySummary]) -> str:
    return "\n".join(f"- {c.name}: {c.size} entities (examples: {', '.join(c.members)})" for c in summaries)


def _parse_json(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(_FENCE_RE.sub("", raw.strip()))
    except json.JSONDecodeError as e:
        raise LLMError(f"Model did not return valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise LLMError("Model returned JSON that is not an object")
    return data


def _mentions(text_lower: str, name: str) -> int:
    return max(1, text_lower.count(name))


class OllamaEnricher:
    def __init__(self, *, client: OllamaChatClient, max_chars: int = 2000):
        self.client = client
        self.max_chars = int(max_chars)

    async def extract_entities_and_relationships(self, text: str) -> Extraction:
        prompt = EXTRACT_PROMPT.format(text=text[: self.max_chars])
        raw = await self.client.chat([ChatMessage(role="user", content=prompt)], json_mode=True)
        data = _parse_json(raw)

        text_lower = text.lower()
        entities: dict[str, Concept] = {}
        for e in data.get("entities") or []:
            if not isinstance(e, dict) or not isinstance(e.get("name"), str):
                continue
            name = norm_entity(e["name"])
            if not name or name in entities:
                continue
            etype = str(e.get("type") or "CONCEPT").upper()
            entities[name] = Concept(
                name=name,
                frequency=_mentions(text_lower, name),
                kind="entity",
                type=etype if etype in ENTITY_TYPES else "CONCEPT",
                description=str(e.get("description") or "").strip() or None,
            )
        if not entities:
            raise LLMError("Model returned no entities")

        relationships = []
        for r in data.get("relationships") or []:
            if not isinstance(r, dict):
                continue
            src = norm_entity(str(r.get("source") or ""))
            dst = norm_entity(str(r.get("target") or ""))
            # Skip relationships pointing outside the extracted entity set.
            if src not in entities or dst not in entities or src == dst:
                continue
            relationships.append(
                Relationship(
                    source=src,
                    target=dst,
                    type=str(r.get("type") or "RELATED_TO"),
                    description=str(r.get("description") or ""),
                )
            )

        ranked = sorted(entities.values(), key=lambda c: c.frequency, reverse=True)
        return Extraction(concepts=ranked, relationships=relationships, strategy="enrichment")

    async def summarize_communities(self, question: str, summaries: list[CommunitySummary]) -> str:
        prompt = SUMMARIZE_PROMPT.format(question=question.strip(), communities=format_communities(summaries))
        out = (await self.client.chat([ChatMessage(role="user", content=prompt)])).strip()
        if not out:
            raise LLMError("Model returned an empty summary")
        return out
