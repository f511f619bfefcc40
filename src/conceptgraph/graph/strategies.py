"""Ordered fallback chains: the first strategy that does not fail wins."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

from .extract import ConceptExtractor
from .models import Extraction

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


async def first_success(strategies: Sequence[S], call: Callable[[S], Awaitable[T]], *, what: str) -> tuple[S, T]:
    """Try each strategy in order; failures are logged and the next one is used.

    The last strategy's exception propagates when every strategy fails.
    """
    if not strategies:
        raise ValueError(f"No {what} strategies configured")
    for strategy in strategies[:-1]:
        try:
            return strategy, await call(strategy)
        except Exception as e:
            logger.warning("%s strategy %s failed, falling back: %s", what, getattr(strategy, "name", strategy), e)
    last = strategies[-1]
    return last, await call(last)


class ExtractionStrategy(Protocol):
    name: str

    async def extract(self, text: str) -> Extraction: ...


class DeterministicStrategy:
    name = "deterministic"

    def __init__(self, extractor: ConceptExtractor | None = None):
        self.extractor = extractor or ConceptExtractor()

    async def extract(self, text: str) -> Extraction:
        return Extraction(concepts=self.extractor.extract_text(text), strategy=self.name)


class EnrichmentStrategy:
    name = "enrichment"

    def __init__(self, enricher, *, timeout_s: float = 60.0):
        # Any object with `extract_entities_and_relationships(text) -> Extraction`.
        self.enricher = enricher
        self.timeout_s = float(timeout_s)

    async def extract(self, text: str) -> Extraction:
        return await asyncio.wait_for(self.enricher.extract_entities_and_relationships(text), timeout=self.timeout_s)


class ExtractionChain:
    def __init__(self, strategies: Sequence[ExtractionStrategy]):
        self.strategies = list(strategies)

    async def extract(self, text: str) -> Extraction:
        _, result = await first_success(self.strategies, lambda s: s.extract(text), what="extraction")
        return result
