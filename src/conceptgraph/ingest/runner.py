from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol

import httpx

from ..errors import FetchError, InputTooLargeError, StoreError
from ..graph.models import DocumentSummary
from .sources import extract_plain_text, is_url

logger = logging.getLogger(__name__)


class Ingestor(Protocol):
    async def ingest_document(
        self, name: str, content: str, source_kind: str = "text", *, source: str | None = None
    ) -> DocumentSummary: ...

    async def clear(self) -> None: ...


@dataclass(frozen=True)
class IngestOptions:
    max_source_bytes: int = 100 * 1024 * 1024
    fetch_timeout_s: float = 15.0
    clear: bool = False


@dataclass(frozen=True)
class SourceResult:
    source: str
    ok: bool
    summary: DocumentSummary | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"source": self.source, "ok": self.ok}
        if self.summary is not None:
            s = self.summary
            out.update(name=s.name, concepts=s.concepts, size=s.size, type=s.source_kind, strategy=s.strategy)
        if self.error is not None:
            out.update(error=self.error, error_kind=self.error_kind)
        return out


def _failure(source: str, kind: str, e: BaseException) -> SourceResult:
    logger.warning("Failed to ingest %s (%s): %s", source, kind, e)
    return SourceResult(source=source, ok=False, error=str(e) or type(e).__name__, error_kind=kind)


async def ingest_source(
    graph: Ingestor,
    source: str,
    *,
    options: IngestOptions,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SourceResult:
    """Ingest one file path or URL. Never raises for per-source problems."""
    url = is_url(source)
    try:
        text = await extract_plain_text(
            source,
            max_bytes=options.max_source_bytes,
            timeout_s=options.fetch_timeout_s,
            transport=transport,
        )
        summary = await graph.ingest_document(
            source if url else Path(source).name,
            text,
            "url" if url else "file",
            source=source,
        )
    except InputTooLargeError as e:
        return _failure(source, "too_large", e)
    except FetchError as e:
        return _failure(source, "fetch", e)
    except StoreError as e:
        return _failure(source, "store", e)
    except Exception as e:
        logger.exception("Unexpected error while ingesting %s", source)
        return SourceResult(source=source, ok=False, error=str(e) or type(e).__name__, error_kind="error")

    return SourceResult(source=source, ok=True, summary=summary)


async def ingest_sources(
    graph: Ingestor,
    *,
    files: Iterable[str | Path] = (),
    urls: Iterable[str] = (),
    options: IngestOptions | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[SourceResult]:
    """Ingest files then URLs, one at a time; failures are reported per source."""
    options = options or IngestOptions()
    sources = [str(f) for f in files] + [str(u) for u in urls]

    if options.clear:
        await graph.clear()

    results = []
    for source in sources:
        results.append(await ingest_source(graph, source, options=options, transport=transport))

    ok = sum(1 for r in results if r.ok)
    logger.info("Ingestion complete: %d of %d sources processed", ok, len(results))
    return results
