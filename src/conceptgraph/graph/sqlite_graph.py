from __future__ import annotations

import asyncio
import os
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..errors import StoreError
from .models import CommunitySummary, ConceptNode, Document, DocumentHit, utc_now
from .store import EdgeType, NodeLabel, edge_key

T = TypeVar("T")


def connect(db_path: str | os.PathLike[str]) -> sqlite3.Connection:
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    # Statements run on worker threads, serialized by SqliteGraphStore._lock.
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def init_graph(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
          doc_id TEXT PRIMARY KEY,
          name TEXT NOT NULL,
          source_kind TEXT NOT NULL,
          source TEXT,
          content TEXT NOT NULL,
          size INTEGER NOT NULL,
          created_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS concepts (
          name TEXT PRIMARY KEY,
          kind TEXT NOT NULL,
          type TEXT,
          description TEXT,
          frequency INTEGER NOT NULL,
          community TEXT,
          created_at TEXT NOT NULL
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_concepts_community ON concepts(community);")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS contains (
          doc_id TEXT NOT NULL REFERENCES documents(doc_id) ON DELETE CASCADE,
          concept TEXT NOT NULL REFERENCES concepts(name) ON DELETE CASCADE,
          weight INTEGER NOT NULL,
          PRIMARY KEY (doc_id, concept)
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_contains_concept ON contains(concept);")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS related (
          name_a TEXT NOT NULL REFERENCES concepts(name) ON DELETE CASCADE,
          name_b TEXT NOT NULL REFERENCES concepts(name) ON DELETE CASCADE,
          weight INTEGER NOT NULL,
          PRIMARY KEY (name_a, name_b)
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_related_b ON related(name_b);")

    conn.commit()


def _node(row: sqlite3.Row) -> ConceptNode:
    return ConceptNode(
        name=str(row["name"]),
        frequency=int(row["frequency"]),
        kind=str(row["kind"]),
        type=row["type"],
        description=row["description"],
        community=row["community"],
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )


def _document(row: sqlite3.Row) -> Document:
    return Document(
        doc_id=str(row["doc_id"]),
        name=str(row["name"]),
        source_kind=str(row["source_kind"]),
        source=row["source"],
        content=str(row["content"]),
        size=int(row["size"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )


def _placeholders(n: int) -> str:
    return ",".join(["?"] * n)


class SqliteGraphStore:
    """Graph repository backed by a single SQLite file.

    Counter merges are single ``INSERT .. ON CONFLICT DO UPDATE`` statements, so
    increments are atomic read-modify-writes inside SQLite.
    """

    def __init__(self, db_path: str | os.PathLike[str]):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = connect(self.db_path)
            init_graph(self._conn)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open graph database at {self.db_path}: {e}") from e

    def _call(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                out = fn(self._conn)
                self._conn.commit()
                return out
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreError(f"Graph database error: {e}") from e

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._call, fn)

    async def create_document(self, doc: Document) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO documents(doc_id, name, source_kind, source, content, size, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc.doc_id,
                    doc.name,
                    doc.source_kind,
                    doc.source,
                    doc.content,
                    int(doc.size),
                    doc.created_at.isoformat(),
                ),
            )

        await self._run(op)

    async def upsert_concept(
        self, name: str, delta_frequency: int, attrs: dict[str, Any] | None = None
    ) -> ConceptNode:
        attrs = attrs or {}

        def op(conn: sqlite3.Connection) -> ConceptNode:
            # SET expressions see the pre-update row; an entity merge upgrades a
            # concept node and fills in type/description.
            conn.execute(
                """
                INSERT INTO concepts(name, kind, type, description, frequency, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                  frequency = frequency + excluded.frequency,
                  kind = CASE WHEN excluded.kind = 'entity' THEN 'entity' ELSE kind END,
                  type = CASE
                    WHEN excluded.kind = 'entity' AND kind <> 'entity' THEN COALESCE(excluded.type, type)
                    ELSE COALESCE(type, excluded.type)
                  END,
                  description = CASE
                    WHEN excluded.kind = 'entity' AND kind <> 'entity'
                      THEN COALESCE(NULLIF(excluded.description, ''), description)
                    ELSE COALESCE(NULLIF(description, ''), excluded.description)
                  END
                """,
                (
                    name,
                    attrs.get("kind") or "concept",
                    attrs.get("type"),
                    attrs.get("description"),
                    int(delta_frequency),
                    utc_now().isoformat(),
                ),
            )
            row = conn.execute("SELECT * FROM concepts WHERE name = ?", (name,)).fetchone()
            return _node(row)

        return await self._run(op)

    async def create_contains_edge(self, doc_id: str, concept_name: str, weight: int) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO contains(doc_id, concept, weight) VALUES (?, ?, ?)",
                (doc_id, concept_name, int(weight)),
            )

        await self._run(op)

    async def upsert_related_edge(self, name_a: str, name_b: str, delta_weight: int) -> int:
        if name_a == name_b:
            return 0
        a, b = edge_key(name_a, name_b)

        def op(conn: sqlite3.Connection) -> int:
            conn.execute(
                """
                INSERT INTO related(name_a, name_b, weight)
                VALUES (?, ?, ?)
                ON CONFLICT(name_a, name_b) DO UPDATE SET weight = weight + excluded.weight
                """,
                (a, b, max(0, int(delta_weight))),
            )
            row = conn.execute("SELECT weight FROM related WHERE name_a = ? AND name_b = ?", (a, b)).fetchone()
            return int(row["weight"])

        return await self._run(op)

    async def clear_all(self) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM related;")
            conn.execute("DELETE FROM contains;")
            conn.execute("DELETE FROM concepts;")
            conn.execute("DELETE FROM documents;")

        await self._run(op)

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

        clauses = []
        params: list[Any] = []
        for t in terms:
            clauses.append("instr(lower(name), ?) > 0")
            params.append(t)
            if include_description:
                clauses.append("instr(lower(COALESCE(description, '')), ?) > 0")
                params.append(t)
        where = "(" + " OR ".join(clauses) + ")"
        if kind is not None:
            where += " AND kind = ?"
            params.append(kind)
        params.append(int(limit))

        def op(conn: sqlite3.Connection) -> list[ConceptNode]:
            rows = conn.execute(
                f"SELECT * FROM concepts WHERE {where} ORDER BY frequency DESC, name ASC LIMIT ?",
                params,
            ).fetchall()
            return [_node(r) for r in rows]

        return await self._run(op)

    async def find_documents_by_concepts(self, names: list[str], *, limit: int = 5) -> list[DocumentHit]:
        names = list(dict.fromkeys(names))
        if not names:
            return []
        ph = _placeholders(len(names))

        def op(conn: sqlite3.Connection) -> list[DocumentHit]:
            ranked = conn.execute(
                f"""
                SELECT d.doc_id, SUM(c.weight) AS relevance
                FROM contains c
                JOIN documents d ON d.doc_id = c.doc_id
                WHERE c.concept IN ({ph})
                GROUP BY d.doc_id
                ORDER BY relevance DESC, d.rowid ASC
                LIMIT ?
                """,
                (*names, int(limit)),
            ).fetchall()

            out: list[DocumentHit] = []
            for r in ranked:
                doc_id = str(r["doc_id"])
                doc = conn.execute("SELECT * FROM documents WHERE doc_id = ?", (doc_id,)).fetchone()
                matched = conn.execute(
                    f"""
                    SELECT concept FROM contains
                    WHERE doc_id = ? AND concept IN ({ph})
                    ORDER BY weight DESC, concept ASC
                    """,
                    (doc_id, *names),
                ).fetchall()
                out.append(
                    DocumentHit(
                        document=_document(doc),
                        relevance=int(r["relevance"]),
                        concepts=[str(m["concept"]) for m in matched],
                    )
                )
            return out

        return await self._run(op)

    async def label_community(self, concept_name: str, label: str) -> None:
        await self.label_communities({concept_name: label})

    async def label_communities(self, labels: dict[str, str]) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.executemany(
                "UPDATE concepts SET community = ? WHERE name = ?",
                [(label, name) for name, label in labels.items()],
            )

        await self._run(op)

    async def list_communities(self, *, limit: int = 10, sample_size: int = 5) -> list[CommunitySummary]:
        def op(conn: sqlite3.Connection) -> list[CommunitySummary]:
            groups = conn.execute(
                """
                SELECT community, COUNT(*) AS size
                FROM concepts
                WHERE community IS NOT NULL
                GROUP BY community
                ORDER BY size DESC, community ASC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
            out = []
            for g in groups:
                members = conn.execute(
                    "SELECT name FROM concepts WHERE community = ? ORDER BY frequency DESC, name ASC LIMIT ?",
                    (g["community"], int(sample_size)),
                ).fetchall()
                out.append(
                    CommunitySummary(
                        name=str(g["community"]),
                        size=int(g["size"]),
                        members=[str(m["name"]) for m in members],
                    )
                )
            return out

        return await self._run(op)

    async def count_nodes_by_label(self, label: NodeLabel) -> int:
        if label == "document":
            sql, params = "SELECT COUNT(*) AS n FROM documents", ()
        elif label == "node":
            sql, params = "SELECT COUNT(*) AS n FROM concepts", ()
        else:
            sql, params = "SELECT COUNT(*) AS n FROM concepts WHERE kind = ?", (label,)
        return await self._run(lambda conn: int(conn.execute(sql, params).fetchone()["n"]))

    async def count_edges_by_type(self, edge_type: EdgeType) -> int:
        table = "contains" if edge_type == "contains" else "related"
        return await self._run(lambda conn: int(conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]))

    async def get_concept(self, name: str) -> ConceptNode | None:
        def op(conn: sqlite3.Connection) -> ConceptNode | None:
            row = conn.execute("SELECT * FROM concepts WHERE name = ?", (name,)).fetchone()
            return _node(row) if row is not None else None

        return await self._run(op)

    async def get_related_weight(self, name_a: str, name_b: str) -> int | None:
        a, b = edge_key(name_a, name_b)

        def op(conn: sqlite3.Connection) -> int | None:
            row = conn.execute("SELECT weight FROM related WHERE name_a = ? AND name_b = ?", (a, b)).fetchone()
            return int(row["weight"]) if row is not None else None

        return await self._run(op)

    async def list_concepts(self) -> list[ConceptNode]:
        return await self._run(
            lambda conn: [_node(r) for r in conn.execute("SELECT * FROM concepts ORDER BY rowid").fetchall()]
        )

    async def list_related_edges(self) -> list[tuple[str, str, int]]:
        return await self._run(
            lambda conn: [
                (str(r["name_a"]), str(r["name_b"]), int(r["weight"]))
                for r in conn.execute("SELECT name_a, name_b, weight FROM related").fetchall()
            ]
        )

    async def neighbors(self, name: str, *, limit: int = 10) -> list[tuple[str, int]]:
        def op(conn: sqlite3.Connection) -> list[tuple[str, int]]:
            # For undirected edges, query both sides.
            rows = conn.execute(
                """
                SELECT
                  CASE WHEN name_a = ? THEN name_b ELSE name_a END AS neighbor,
                  weight
                FROM related
                WHERE name_a = ? OR name_b = ?
                ORDER BY weight DESC, neighbor ASC
                LIMIT ?
                """,
                (name, name, name, int(limit)),
            ).fetchall()
            return [(str(r["neighbor"]), int(r["weight"])) for r in rows]

        return await self._run(op)

    async def total_document_size(self) -> int:
        return await self._run(
            lambda conn: int(conn.execute("SELECT COALESCE(SUM(size), 0) AS n FROM documents").fetchone()["n"])
        )

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
