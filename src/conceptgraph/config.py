from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    # SQLite graph used by the CLI and the web API.
    db_path: str = os.getenv("CONCEPTGRAPH_DB_PATH", "./data/graph.db")

    # Size ceilings
    max_corpus_mb: float = float(os.getenv("CONCEPTGRAPH_MAX_CORPUS_MB", "100"))
    max_source_mb: float = float(os.getenv("CONCEPTGRAPH_MAX_SOURCE_MB", "100"))
    fetch_timeout_s: float = float(os.getenv("CONCEPTGRAPH_FETCH_TIMEOUT", "15"))

    # Extraction
    stem: bool = _flag("CONCEPTGRAPH_STEM", "1")
    phrases: bool = _flag("CONCEPTGRAPH_PHRASES", "1")
    max_concepts: int = int(os.getenv("CONCEPTGRAPH_MAX_CONCEPTS", "50"))

    # Optional LLM enrichment (Ollama)
    enrich: bool = _flag("CONCEPTGRAPH_ENRICH", "0")
    enrich_timeout_s: float = float(os.getenv("CONCEPTGRAPH_ENRICH_TIMEOUT", "60"))
    ollama_base_url: str = os.getenv("CONCEPTGRAPH_OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("CONCEPTGRAPH_OLLAMA_MODEL", "llama3.2:1b")

    log_level: str = os.getenv("CONCEPTGRAPH_LOG_LEVEL", "INFO")

    @property
    def max_corpus_bytes(self) -> int:
        return int(self.max_corpus_mb * 1024 * 1024)

    @property
    def max_source_bytes(self) -> int:
        return int(self.max_source_mb * 1024 * 1024)
