"""SQLite storage backend.

List-valued columns are stored as JSON arrays. Every statement runs behind a
single lock, so the store behaves as a single-writer queue even when shared
between threads.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from ..models import (
    ConceptCluster,
    ConceptLink,
    ConceptNode,
    DailyTagSelection,
    Spark,
    Tag,
    TagHistoryEntry,
)
from .base import GraphStoreBase, name_key

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS concept_nodes (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    name_key      TEXT NOT NULL UNIQUE,
    description   TEXT,
    cluster       TEXT NOT NULL,
    weight        REAL DEFAULT 0.5,
    spark_ids     TEXT NOT NULL,
    created_at    INTEGER NOT NULL,
    last_updated  INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_concepts_cluster ON concept_nodes(cluster);

CREATE TABLE IF NOT EXISTS concept_links (
    id            TEXT PRIMARY KEY,
    concept_a     TEXT NOT NULL,
    concept_b     TEXT NOT NULL,
    strength      REAL NOT NULL,
    link_type     TEXT,
    spark_ids     TEXT NOT NULL,
    last_update   INTEGER NOT NULL,
    UNIQUE(concept_a, concept_b),
    CHECK(concept_a < concept_b)
);
CREATE INDEX IF NOT EXISTS idx_links_concept_a ON concept_links(concept_a);
CREATE INDEX IF NOT EXISTS idx_links_concept_b ON concept_links(concept_b);

CREATE TABLE IF NOT EXISTS concept_clusters (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL UNIQUE,
    description   TEXT,
    concepts      TEXT NOT NULL,
    coherence     REAL DEFAULT 0.5,
    spark_count   INTEGER DEFAULT 0,
    last_updated  INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    name_key      TEXT NOT NULL UNIQUE,
    cluster       TEXT,
    usage_count   INTEGER DEFAULT 0,
    last_used     INTEGER,
    is_default    INTEGER DEFAULT 0,
    created_at    INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tags_cluster ON tags(cluster);
CREATE INDEX IF NOT EXISTS idx_tags_last_used ON tags(last_used);

CREATE TABLE IF NOT EXISTS tag_history (
    id            TEXT PRIMARY KEY,
    tag_id        TEXT NOT NULL,
    used_at       INTEGER NOT NULL,
    strategy      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tag_history_tag_id ON tag_history(tag_id);
CREATE INDEX IF NOT EXISTS idx_tag_history_used_at ON tag_history(used_at DESC);

CREATE TABLE IF NOT EXISTS daily_tag_selections (
    id                  TEXT PRIMARY KEY,
    date                TEXT NOT NULL UNIQUE,
    tags                TEXT NOT NULL,
    is_manually_edited  INTEGER DEFAULT 0,
    created_at          INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS sparks (
    id            TEXT PRIMARY KEY,
    text          TEXT NOT NULL,
    tags          TEXT NOT NULL,
    mode          INTEGER NOT NULL,
    created_at    INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sparks_mode ON sparks(mode);
CREATE INDEX IF NOT EXISTS idx_sparks_created_at ON sparks(created_at DESC);
"""

# Appends ? to a JSON array column unless already present.
_APPEND_ORIGIN = """CASE
    WHEN EXISTS (SELECT 1 FROM json_each({table}.spark_ids) WHERE value = ?)
    THEN {table}.spark_ids
    ELSE json_insert({table}.spark_ids, '$[#]', ?)
END"""


def _json_list(raw: Any) -> list:
    """Decode a JSON array column, treating null or garbage as empty."""
    if raw is None or raw == "":
        return []
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning(f"Malformed list column, treating as empty: {raw!r}")
        return []
    return value if isinstance(value, list) else []


def _row_to_node(row: sqlite3.Row) -> ConceptNode:
    return ConceptNode(
        id=row["id"],
        name=row["name"],
        cluster=row["cluster"],
        weight=row["weight"],
        spark_ids=_json_list(row["spark_ids"]),
        created_at=row["created_at"],
        last_updated=row["last_updated"],
        description=row["description"],
    )


def _row_to_link(row: sqlite3.Row) -> ConceptLink:
    return ConceptLink(
        id=row["id"],
        concept_a=row["concept_a"],
        concept_b=row["concept_b"],
        strength=row["strength"],
        link_type=row["link_type"] or "semantic",
        spark_ids=_json_list(row["spark_ids"]),
        last_update=row["last_update"],
    )


def _row_to_cluster(row: sqlite3.Row) -> ConceptCluster:
    return ConceptCluster(
        id=row["id"],
        name=row["name"],
        concepts=_json_list(row["concepts"]),
        coherence=row["coherence"],
        spark_count=row["spark_count"],
        last_updated=row["last_updated"],
        description=row["description"],
    )


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        id=row["id"],
        name=row["name"],
        cluster=row["cluster"],
        usage_count=row["usage_count"] or 0,
        last_used=row["last_used"],
        is_default=bool(row["is_default"]),
        created_at=row["created_at"],
    )


def _row_to_history(row: sqlite3.Row) -> TagHistoryEntry:
    return TagHistoryEntry(
        id=row["id"],
        tag_id=row["tag_id"],
        used_at=row["used_at"],
        strategy=row["strategy"],
    )


def _row_to_daily(row: sqlite3.Row) -> DailyTagSelection:
    return DailyTagSelection(
        id=row["id"],
        date=row["date"],
        tags=_json_list(row["tags"]),
        is_manually_edited=bool(row["is_manually_edited"]),
        created_at=row["created_at"],
    )


class SQLiteStore(GraphStoreBase):
    """SQLite-backed persistent store."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self._lock:
            self.conn.executescript(SCHEMA_SQL)
        logger.debug(f"Opened SQLite store at {db_path}")

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """Serialize and commit one unit of work."""
        with self._lock, self.conn:
            yield self.conn

    def _query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _one(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self._query(sql, params)
        return rows[0] if rows else None

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # --- concept nodes ---

    def upsert_concept(self, candidate: ConceptNode, origin_id: str, delta: float) -> ConceptNode:
        key = name_key(candidate.name)
        append = _APPEND_ORIGIN.format(table="concept_nodes")
        with self._tx() as conn:
            conn.execute(
                f"""INSERT INTO concept_nodes
                    (id, name, name_key, description, cluster, weight, spark_ids, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name_key) DO UPDATE SET
                    weight = MAX(0.0, MIN(1.0, concept_nodes.weight + ?)),
                    spark_ids = {append},
                    last_updated = excluded.last_updated""",
                (
                    candidate.id, candidate.name, key, candidate.description,
                    candidate.cluster, candidate.weight, json.dumps(candidate.spark_ids),
                    candidate.created_at, candidate.last_updated,
                    delta, origin_id, origin_id,
                ),
            )
            row = conn.execute("SELECT * FROM concept_nodes WHERE name_key = ?", (key,)).fetchone()
        return _row_to_node(row)

    def get_concept(self, concept_id: str) -> ConceptNode | None:
        row = self._one("SELECT * FROM concept_nodes WHERE id = ?", (concept_id,))
        return _row_to_node(row) if row else None

    def find_concept_by_name(self, name: str) -> ConceptNode | None:
        row = self._one("SELECT * FROM concept_nodes WHERE name_key = ?", (name_key(name),))
        return _row_to_node(row) if row else None

    def list_concepts(self) -> list[ConceptNode]:
        rows = self._query("SELECT * FROM concept_nodes ORDER BY weight DESC, created_at ASC, rowid ASC")
        return [_row_to_node(r) for r in rows]

    def delete_concept(self, concept_id: str) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM concept_nodes WHERE id = ?", (concept_id,))
            conn.execute(
                "DELETE FROM concept_links WHERE concept_a = ? OR concept_b = ?",
                (concept_id, concept_id),
            )
        return cur.rowcount > 0

    # --- concept links ---

    def upsert_link(self, candidate: ConceptLink, origin_id: str, delta: float) -> ConceptLink:
        append = _APPEND_ORIGIN.format(table="concept_links")
        with self._tx() as conn:
            conn.execute(
                f"""INSERT INTO concept_links
                    (id, concept_a, concept_b, strength, link_type, spark_ids, last_update)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(concept_a, concept_b) DO UPDATE SET
                    strength = MAX(0.0, MIN(1.0, concept_links.strength + ?)),
                    spark_ids = {append},
                    last_update = excluded.last_update""",
                (
                    candidate.id, candidate.concept_a, candidate.concept_b, candidate.strength,
                    candidate.link_type, json.dumps(candidate.spark_ids), candidate.last_update,
                    delta, origin_id, origin_id,
                ),
            )
            row = conn.execute(
                "SELECT * FROM concept_links WHERE concept_a = ? AND concept_b = ?",
                (candidate.concept_a, candidate.concept_b),
            ).fetchone()
        return _row_to_link(row)

    def get_link(self, link_id: str) -> ConceptLink | None:
        row = self._one("SELECT * FROM concept_links WHERE id = ?", (link_id,))
        return _row_to_link(row) if row else None

    def find_link(self, concept_a: str, concept_b: str) -> ConceptLink | None:
        row = self._one(
            "SELECT * FROM concept_links WHERE concept_a = ? AND concept_b = ?",
            (concept_a, concept_b),
        )
        return _row_to_link(row) if row else None

    def list_links(self) -> list[ConceptLink]:
        rows = self._query("SELECT * FROM concept_links ORDER BY strength DESC, rowid ASC")
        return [_row_to_link(r) for r in rows]

    def links_for_concept(self, concept_id: str) -> list[ConceptLink]:
        rows = self._query(
            "SELECT * FROM concept_links WHERE concept_a = ? OR concept_b = ? ORDER BY strength DESC, rowid ASC",
            (concept_id, concept_id),
        )
        return [_row_to_link(r) for r in rows]

    def links_above(self, threshold: float) -> list[ConceptLink]:
        rows = self._query(
            "SELECT * FROM concept_links WHERE strength >= ? ORDER BY strength DESC, rowid ASC",
            (threshold,),
        )
        return [_row_to_link(r) for r in rows]

    def most_connected_concepts(self, limit: int) -> list[tuple[ConceptNode, int]]:
        rows = self._query(
            """SELECT cn.*, COUNT(cl.id) AS connection_count
            FROM concept_nodes cn
            LEFT JOIN concept_links cl ON cn.id = cl.concept_a OR cn.id = cl.concept_b
            GROUP BY cn.id
            ORDER BY connection_count DESC, cn.weight DESC, cn.rowid ASC
            LIMIT ?""",
            (limit,),
        )
        return [(_row_to_node(r), r["connection_count"]) for r in rows]

    def delete_link(self, link_id: str) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM concept_links WHERE id = ?", (link_id,))
        return cur.rowcount > 0

    # --- concept clusters ---

    def upsert_cluster(self, cluster: ConceptCluster) -> ConceptCluster:
        with self._tx() as conn:
            conn.execute(
                """INSERT INTO concept_clusters
                    (id, name, description, concepts, coherence, spark_count, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    concepts = excluded.concepts,
                    coherence = excluded.coherence,
                    spark_count = excluded.spark_count,
                    last_updated = excluded.last_updated""",
                (
                    cluster.id, cluster.name, cluster.description, json.dumps(cluster.concepts),
                    cluster.coherence, cluster.spark_count, cluster.last_updated,
                ),
            )
            row = conn.execute("SELECT * FROM concept_clusters WHERE name = ?", (cluster.name,)).fetchone()
        return _row_to_cluster(row)

    def get_cluster(self, cluster_id: str) -> ConceptCluster | None:
        row = self._one("SELECT * FROM concept_clusters WHERE id = ?", (cluster_id,))
        return _row_to_cluster(row) if row else None

    def find_cluster_by_name(self, name: str) -> ConceptCluster | None:
        row = self._one("SELECT * FROM concept_clusters WHERE name = ?", (name,))
        return _row_to_cluster(row) if row else None

    def list_clusters(self) -> list[ConceptCluster]:
        rows = self._query(
            "SELECT * FROM concept_clusters ORDER BY coherence DESC, spark_count DESC, rowid ASC"
        )
        return [_row_to_cluster(r) for r in rows]

    def delete_cluster(self, cluster_id: str) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM concept_clusters WHERE id = ?", (cluster_id,))
        return cur.rowcount > 0

    def reset_graph(self) -> None:
        with self._tx() as conn:
            conn.execute("DELETE FROM concept_nodes")
            conn.execute("DELETE FROM concept_links")
            conn.execute("DELETE FROM concept_clusters")

    # --- tags ---

    def insert_tag(self, tag: Tag) -> None:
        with self._tx() as conn:
            conn.execute(
                """INSERT INTO tags (id, name, name_key, cluster, usage_count, last_used, is_default, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (tag.id, tag.name, name_key(tag.name), tag.cluster, tag.usage_count, tag.last_used,
                 int(tag.is_default), tag.created_at),
            )

    def get_tag(self, tag_id: str) -> Tag | None:
        row = self._one("SELECT * FROM tags WHERE id = ?", (tag_id,))
        return _row_to_tag(row) if row else None

    def get_tags(self, tag_ids: list[str]) -> list[Tag]:
        if not tag_ids:
            return []
        placeholders = ",".join("?" for _ in tag_ids)
        rows = self._query(f"SELECT * FROM tags WHERE id IN ({placeholders})", list(tag_ids))
        by_id = {r["id"]: _row_to_tag(r) for r in rows}
        return [by_id[i] for i in dict.fromkeys(tag_ids) if i in by_id]

    def find_tag_by_name(self, name: str) -> Tag | None:
        row = self._one("SELECT * FROM tags WHERE name_key = ?", (name_key(name),))
        return _row_to_tag(row) if row else None

    def list_tags(self) -> list[Tag]:
        rows = self._query("SELECT * FROM tags ORDER BY name ASC")
        return [_row_to_tag(r) for r in rows]

    def update_tag(self, tag_id: str, fields: dict[str, Any]) -> bool:
        allowed = {k: v for k, v in fields.items() if k in ("name", "cluster")}
        if not allowed:
            return self.get_tag(tag_id) is not None
        if "name" in allowed:
            allowed["name_key"] = name_key(allowed["name"])
        assignments = ", ".join(f"{k} = ?" for k in allowed)
        with self._tx() as conn:
            cur = conn.execute(
                f"UPDATE tags SET {assignments} WHERE id = ?",
                [*allowed.values(), tag_id],
            )
        return cur.rowcount > 0

    def delete_tag(self, tag_id: str) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cur.rowcount > 0

    def increment_tag_usage(self, tag_ids: list[str], used_at: int) -> None:
        if not tag_ids:
            return
        placeholders = ",".join("?" for _ in tag_ids)
        with self._tx() as conn:
            conn.execute(
                f"UPDATE tags SET usage_count = usage_count + 1, last_used = ? WHERE id IN ({placeholders})",
                [used_at, *tag_ids],
            )

    def reset_tag_usage(self) -> None:
        with self._tx() as conn:
            conn.execute("UPDATE tags SET usage_count = 0, last_used = NULL")

    # --- tag history ---

    def insert_history(self, entries: list[TagHistoryEntry]) -> None:
        with self._tx() as conn:
            conn.executemany(
                "INSERT INTO tag_history (id, tag_id, used_at, strategy) VALUES (?, ?, ?, ?)",
                [(e.id, e.tag_id, e.used_at, e.strategy) for e in entries],
            )

    def history_counts(self, start: int, end: int) -> list[tuple[str, int]]:
        rows = self._query(
            """SELECT tag_id, COUNT(*) AS uses
            FROM tag_history
            WHERE used_at >= ? AND used_at < ?
            GROUP BY tag_id
            ORDER BY uses DESC, tag_id ASC""",
            (start, end),
        )
        return [(r["tag_id"], r["uses"]) for r in rows]

    def tag_ids_used_since(self, since: int) -> set[str]:
        rows = self._query("SELECT DISTINCT tag_id FROM tag_history WHERE used_at >= ?", (since,))
        return {r["tag_id"] for r in rows}

    def list_history(self, tag_id: str | None = None) -> list[TagHistoryEntry]:
        if tag_id is None:
            rows = self._query("SELECT * FROM tag_history ORDER BY used_at DESC, rowid DESC")
        else:
            rows = self._query(
                "SELECT * FROM tag_history WHERE tag_id = ? ORDER BY used_at DESC, rowid DESC",
                (tag_id,),
            )
        return [_row_to_history(r) for r in rows]

    def delete_history(self, tag_ids: list[str] | None = None) -> int:
        with self._tx() as conn:
            if tag_ids is None:
                cur = conn.execute("DELETE FROM tag_history")
            elif not tag_ids:
                return 0
            else:
                placeholders = ",".join("?" for _ in tag_ids)
                cur = conn.execute(f"DELETE FROM tag_history WHERE tag_id IN ({placeholders})", list(tag_ids))
        return cur.rowcount

    # --- daily selections ---

    def get_daily(self, date: str) -> DailyTagSelection | None:
        row = self._one("SELECT * FROM daily_tag_selections WHERE date = ?", (date,))
        return _row_to_daily(row) if row else None

    def insert_daily(self, selection: DailyTagSelection) -> None:
        with self._tx() as conn:
            conn.execute(
                """INSERT INTO daily_tag_selections (id, date, tags, is_manually_edited, created_at)
                VALUES (?, ?, ?, ?, ?)""",
                (selection.id, selection.date, json.dumps(selection.tags),
                 int(selection.is_manually_edited), selection.created_at),
            )

    def update_daily(self, date: str, tag_ids: list[str], is_manually_edited: bool) -> bool:
        with self._tx() as conn:
            cur = conn.execute(
                "UPDATE daily_tag_selections SET tags = ?, is_manually_edited = ? WHERE date = ?",
                (json.dumps(tag_ids), int(is_manually_edited), date),
            )
        return cur.rowcount > 0

    def delete_daily(self, date: str) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM daily_tag_selections WHERE date = ?", (date,))
        return cur.rowcount > 0

    # --- sparks ---

    def insert_spark(self, spark: Spark) -> None:
        with self._tx() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sparks (id, text, tags, mode, created_at) VALUES (?, ?, ?, ?, ?)",
                (spark.id, spark.text, json.dumps(spark.tags), spark.mode, spark.created_at),
            )

    def recent_spark_tags(self, mode: int, limit: int) -> list[list[str]]:
        rows = self._query(
            "SELECT tags FROM sparks WHERE mode = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (mode, limit),
        )
        return [_json_list(r["tags"]) for r in rows]

    # --- misc ---

    def counts(self) -> dict[str, int]:
        tables = ("concept_nodes", "concept_links", "concept_clusters", "tags",
                  "tag_history", "daily_tag_selections", "sparks")
        return {t: self._one(f"SELECT COUNT(*) AS n FROM {t}")["n"] for t in tables}
