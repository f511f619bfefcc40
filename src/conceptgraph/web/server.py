from contextlib import asynccontextmanager
from typing import Any

from .. import __version__
from ..config import Settings
from ..errors import InputTooLargeError, StoreError
from ..ingest.runner import SourceResult
from ..service import KnowledgeGraph


def create_app(*, settings: Settings | None = None, graph: KnowledgeGraph | None = None):
    # Lazy import so core CLI works without web deps.
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel, Field

    settings = settings or Settings()
    owns_graph = graph is None

    class IngestRequest(BaseModel):
        files: list[str] = Field(default_factory=list)
        urls: list[str] = Field(default_factory=list)
        text: str | None = None
        name: str = "text"
        clear: bool = False

    class QueryRequest(BaseModel):
        question: str
        mode: str = "auto"

    class CommunitiesRequest(BaseModel):
        limit: int = 10
        detect: bool = True

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        app_.state.graph = graph or KnowledgeGraph.from_settings(settings)
        try:
            yield
        finally:
            if owns_graph:
                await app_.state.graph.close()

    app = FastAPI(title="ConceptGraph", version=__version__, lifespan=lifespan)

    def _kg(request: Request) -> KnowledgeGraph:
        return request.app.state.graph

    @app.exception_handler(InputTooLargeError)
    async def too_large(request: Request, e: InputTooLargeError):
        return JSONResponse({"ok": False, "error": str(e), "size": e.size, "limit": e.limit}, status_code=413)

    @app.exception_handler(StoreError)
    async def store_error(request: Request, e: StoreError):
        return JSONResponse({"ok": False, "error": str(e)}, status_code=503)

    @app.get("/")
    async def home():
        return {
            "name": "ConceptGraph",
            "version": __version__,
            "endpoints": ["/status", "/ingest", "/query", "/stats", "/communities", "/clear"],
        }

    @app.get("/status")
    async def status(request: Request):
        res = await _kg(request).stats(top=0)
        return {
            "ok": True,
            "db_path": settings.db_path,
            "documents": res["documents"],
            "nodes": res["concepts"] + res["entities"],
            "enrich": settings.enrich,
            "ollama_model": settings.ollama_model if settings.enrich else None,
        }

    @app.post("/ingest")
    async def ingest(payload: IngestRequest, request: Request):
        kg = _kg(request)
        if payload.text is not None:
            if not payload.text.strip():
                return JSONResponse({"ok": False, "error": "text is empty"}, status_code=400)
            if payload.clear:
                await kg.clear()
            summary = await kg.ingest_document(payload.name, payload.text, "text")
            return {"ok": True, "results": [SourceResult(source=payload.name, ok=True, summary=summary).to_dict()]}

        if not payload.files and not payload.urls:
            return JSONResponse({"ok": False, "error": "Provide text, files or urls."}, status_code=400)

        results = await kg.ingest_sources(files=payload.files, urls=payload.urls, clear=payload.clear)
        out: dict[str, Any] = {"ok": any(r.ok for r in results), "results": [r.to_dict() for r in results]}
        return out

    @app.post("/query")
    async def query(payload: QueryRequest, request: Request):
        question = payload.question.strip()
        if not question:
            return JSONResponse({"ok": False, "error": "question is required"}, status_code=400)
        if payload.mode not in {"auto", "local", "global"}:
            return JSONResponse({"ok": False, "error": f"Unknown search mode: {payload.mode}"}, status_code=400)
        ans = await _kg(request).query(question, payload.mode)
        return {"ok": True, **ans.to_dict()}

    @app.get("/stats")
    async def stats(request: Request, top: int = 10):
        return {"ok": True, **(await _kg(request).stats(top=int(top)))}

    @app.post("/communities")
    async def communities(request: Request, payload: CommunitiesRequest | None = None):
        payload = payload or CommunitiesRequest()
        kg = _kg(request)
        count = await kg.detect_communities() if payload.detect else None
        summaries = await kg.list_communities(limit=int(payload.limit))
        return {
            "ok": True,
            "detected": count,
            "communities": [{"name": c.name, "size": c.size, "members": list(c.members)} for c in summaries],
        }

    @app.post("/clear")
    async def clear(request: Request):
        await _kg(request).clear()
        return {"ok": True}

    return app
