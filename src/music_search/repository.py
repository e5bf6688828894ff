from __future__ import annotations

import json
import logging
import re
import sqlite3
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_FIELD_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


@dataclass
class Node:
    """A typed content node (artist, band, album or song)."""

    id: int
    bundle: str
    title: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class Term:
    """A taxonomy term within a vocabulary."""

    id: int
    vocabulary: str
    name: str


@dataclass(frozen=True)
class MediaAsset:
    """A media entity wrapping a stored file."""

    id: int
    bundle: str
    name: str
    file_id: int
    alt: str | None = None
    uri: str | None = None


class ContentRepository(ABC):
    """
    Storage contract the reconciliation engine writes through.

    Nodes are typed by bundle; titles are not unique at this level. The
    engine treats title-within-bundle as the natural key for artists and bands.
    """

    # --- Nodes ---

    @abstractmethod
    def create_node(self, bundle: str, title: str, fields: dict[str, Any] | None = None) -> Node:
        ...

    @abstractmethod
    def get_node(self, node_id: int) -> Node | None:
        ...

    @abstractmethod
    def load_nodes(self, bundle: str, title: str | None = None, **field_values: Any) -> list[Node]:
        """Load nodes of a bundle, optionally filtered by title and field values."""
        ...

    @abstractmethod
    def update_node(self, node: Node) -> Node:
        ...

    @abstractmethod
    def delete_node(self, node_id: int) -> None:
        ...

    # --- Taxonomy ---

    @abstractmethod
    def find_terms(self, name: str, vocabulary: str) -> list[Term]:
        ...

    @abstractmethod
    def create_term(self, name: str, vocabulary: str) -> Term:
        ...

    @abstractmethod
    def count_terms(self, vocabulary: str) -> int:
        """Number of terms in a vocabulary."""
        ...

    # --- Files and media ---

    @abstractmethod
    def create_file(self, uri: str, filename: str) -> int:
        ...

    @abstractmethod
    def create_media(self, name: str, file_id: int, alt: str | None = None, bundle: str = "image") -> MediaAsset:
        ...

    @abstractmethod
    def get_media(self, media_id: int) -> MediaAsset | None:
        ...


class SqliteContentRepository(ContentRepository):
    """
    SQLite-backed content repository.

    Node fields are stored as a JSON document per node; field filters use
    json_extract. No locking: concurrent writers can race on the same title.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        logger.info(f"Initializing content repository at {db_path}")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()

        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS node (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bundle TEXT NOT NULL,
                title TEXT NOT NULL,
                status INTEGER NOT NULL DEFAULT 1,
                fields_json TEXT NOT NULL DEFAULT '{}',
                created_at REAL NOT NULL,
                changed_at REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_node_bundle_title ON node(bundle, title);

            CREATE TABLE IF NOT EXISTS taxonomy_term (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vocabulary TEXT NOT NULL,
                name TEXT NOT NULL,
                UNIQUE (vocabulary, name)
            );

            CREATE TABLE IF NOT EXISTS file (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                uri TEXT NOT NULL,
                filename TEXT NOT NULL,
                created_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS media (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bundle TEXT NOT NULL,
                name TEXT NOT NULL,
                file_id INTEGER NOT NULL,
                alt TEXT,
                created_at REAL NOT NULL,
                FOREIGN KEY (file_id) REFERENCES file(id)
            );
            """
        )

        conn.commit()
        conn.close()

    @staticmethod
    def _row_to_node(row: sqlite3.Row) -> Node:
        return Node(
            id=row["id"],
            bundle=row["bundle"],
            title=row["title"],
            fields=json.loads(row["fields_json"] or "{}"),
        )

    def create_node(self, bundle: str, title: str, fields: dict[str, Any] | None = None) -> Node:
        """Insert a node and return it with its new ID."""
        now = time.time()
        fields = dict(fields or {})

        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO node (bundle, title, fields_json, created_at, changed_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (bundle, title, json.dumps(fields), now, now),
            )
            conn.commit()
            node_id = cursor.lastrowid
        finally:
            conn.close()

        logger.debug(f"Created {bundle} node {node_id}: {title}")
        return Node(id=int(node_id or 0), bundle=bundle, title=title, fields=fields)

    def get_node(self, node_id: int) -> Node | None:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM node WHERE id = ?", (node_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_node(row) if row else None

    def load_nodes(self, bundle: str, title: str | None = None, **field_values: Any) -> list[Node]:
        """
        Load nodes by properties.

        Args:
            bundle: Node bundle (artist, band, album, song)
            title: Exact title match
            **field_values: Exact matches on top-level JSON fields
                (e.g. field_artist_song=12)

        Returns:
            Matching nodes ordered by ID
        """
        clauses = ["bundle = ?"]
        params: list[Any] = [bundle]

        if title is not None:
            clauses.append("title = ?")
            params.append(title)

        for name, value in field_values.items():
            if not _FIELD_NAME.match(name):
                raise ValueError(f"Invalid field name: {name!r}")
            clauses.append(f"json_extract(fields_json, '$.{name}') = ?")
            params.append(value)

        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT * FROM node WHERE {' AND '.join(clauses)} ORDER BY id",
                params,
            ).fetchall()
        finally:
            conn.close()

        return [self._row_to_node(row) for row in rows]

    def update_node(self, node: Node) -> Node:
        """Persist a node's title and fields."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE node SET title = ?, fields_json = ?, changed_at = ? WHERE id = ?",
                (node.title, json.dumps(node.fields), time.time(), node.id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise LookupError(f"Node {node.id} does not exist")
        finally:
            conn.close()
        return node

    def delete_node(self, node_id: int) -> None:
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM node WHERE id = ?", (node_id,))
            conn.commit()
        finally:
            conn.close()
        logger.debug(f"Deleted node {node_id}")

    def find_terms(self, name: str, vocabulary: str) -> list[Term]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM taxonomy_term WHERE vocabulary = ? AND name = ? ORDER BY id",
                (vocabulary, name),
            ).fetchall()
        finally:
            conn.close()
        return [Term(id=row["id"], vocabulary=row["vocabulary"], name=row["name"]) for row in rows]

    def create_term(self, name: str, vocabulary: str) -> Term:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO taxonomy_term (vocabulary, name) VALUES (?, ?)",
                (vocabulary, name),
            )
            conn.commit()
            term_id = cursor.lastrowid
        finally:
            conn.close()
        return Term(id=int(term_id or 0), vocabulary=vocabulary, name=name)

    def count_terms(self, vocabulary: str) -> int:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM taxonomy_term WHERE vocabulary = ?", (vocabulary,)
            ).fetchone()
        finally:
            conn.close()
        return int(row[0])

    def create_file(self, uri: str, filename: str) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO file (uri, filename, created_at) VALUES (?, ?, ?)",
                (uri, filename, time.time()),
            )
            conn.commit()
            file_id = cursor.lastrowid
        finally:
            conn.close()
        return int(file_id or 0)

    def create_media(self, name: str, file_id: int, alt: str | None = None, bundle: str = "image") -> MediaAsset:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO media (bundle, name, file_id, alt, created_at) VALUES (?, ?, ?, ?, ?)",
                (bundle, name, file_id, alt, time.time()),
            )
            conn.commit()
            media_id = cursor.lastrowid
            uri_row = conn.execute("SELECT uri FROM file WHERE id = ?", (file_id,)).fetchone()
        finally:
            conn.close()
        return MediaAsset(
            id=int(media_id or 0),
            bundle=bundle,
            name=name,
            file_id=file_id,
            alt=alt,
            uri=uri_row["uri"] if uri_row else None,
        )

    def get_media(self, media_id: int) -> MediaAsset | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT media.*, file.uri AS uri FROM media
                JOIN file ON file.id = media.file_id
                WHERE media.id = ?
                """,
                (media_id,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return MediaAsset(
            id=row["id"],
            bundle=row["bundle"],
            name=row["name"],
            file_id=row["file_id"],
            alt=row["alt"],
            uri=row["uri"],
        )


## Tests


def test_repository_node_roundtrip(tmp_path):
    repo = SqliteContentRepository(tmp_path / "content.sqlite")
    node = repo.create_node("artist", "ABBA", {"field_spotify_id": "sp1"})

    loaded = repo.get_node(node.id)
    assert loaded is not None
    assert loaded.title == "ABBA"
    assert loaded.get("field_spotify_id") == "sp1"

    assert [n.id for n in repo.load_nodes("artist", title="ABBA")] == [node.id]
    assert repo.load_nodes("band", title="ABBA") == []


def test_repository_field_filter(tmp_path):
    repo = SqliteContentRepository(tmp_path / "content.sqlite")
    song = repo.create_node("song", "SOS", {"field_artist_song": 7})
    repo.create_node("song", "Waterloo", {"field_artist_song": 8})

    assert [n.id for n in repo.load_nodes("song", field_artist_song=7)] == [song.id]


def test_repository_count_terms(tmp_path):
    repo = SqliteContentRepository(tmp_path / "content.sqlite")
    repo.create_term("Pop", "music_genre")
    repo.create_term("Disco", "music_genre")
    repo.create_term("Polar", "label")

    assert repo.count_terms("music_genre") == 2
    assert repo.count_terms("mood") == 0
    assert "count_terms" in ContentRepository.__abstractmethods__
