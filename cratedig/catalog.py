"""
Catalog store for cratedig.

Users, collections, tags and export definitions live in one sqlite
database. The connection is only used from the UI thread.
"""
import os
import sqlite3
from pathlib import Path
from typing import List, Optional, Union

from .items import CollectionSummary, ExportTarget, SubcollectionLabel, TagRecord
from .logging_config import get_logger, CatalogError, ExportError, NotFoundError
from .state import UserProfile

logger = get_logger('catalog')

SCHEMA = """
CREATE TABLE IF NOT EXISTS User (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    root TEXT NOT NULL DEFAULT '',
    auto_audition INTEGER NOT NULL DEFAULT 0,
    selected_collection INTEGER,
    selected_subcollection TEXT NOT NULL DEFAULT '',
    FOREIGN KEY (selected_collection) REFERENCES Collection(id)
);
CREATE TABLE IF NOT EXISTS Collection (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    FOREIGN KEY (user_id) REFERENCES User(id)
);
CREATE TABLE IF NOT EXISTS Tag (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    file_path TEXT NOT NULL,
    UNIQUE (user_id, file_path),
    FOREIGN KEY (user_id) REFERENCES User(id)
);
CREATE TABLE IF NOT EXISTS CollectionTag (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tag_id INTEGER NOT NULL,
    collection_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    sub_collection TEXT NOT NULL DEFAULT '',
    UNIQUE (tag_id, collection_id, sub_collection),
    FOREIGN KEY (tag_id) REFERENCES Tag(id),
    FOREIGN KEY (collection_id) REFERENCES Collection(id)
);
CREATE TABLE IF NOT EXISTS Export (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    output_dir TEXT NOT NULL,
    concrete INTEGER NOT NULL DEFAULT 0,
    UNIQUE (user_id, name),
    FOREIGN KEY (user_id) REFERENCES User(id)
);
CREATE INDEX IF NOT EXISTS idx_tag_file_path ON Tag(file_path);
"""

_USER_SELECT = """
SELECT u.id, u.name, u.root, u.auto_audition, u.selected_subcollection,
       c.id, c.name, c.description
FROM User u
LEFT JOIN Collection c ON u.selected_collection = c.id
"""

_TAG_SELECT = """
SELECT ct.id, ct.name, t.file_path, col.name, ct.sub_collection
FROM CollectionTag ct
JOIN Collection col ON ct.collection_id = col.id
JOIN Tag t ON ct.tag_id = t.id
"""


def normalize_subcollection(subcollection: str) -> str:
    """Give a non-empty subcollection a single leading ``/``."""
    subcollection = subcollection.strip()
    if subcollection and not subcollection.startswith("/"):
        subcollection = "/" + subcollection
    return subcollection


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _user_from_row(row: tuple) -> UserProfile:
    user_id, name, root, auto_audition, subcollection, col_id, col_name, col_desc = row
    collection = None
    if col_id is not None:
        collection = CollectionSummary(col_id, col_name, col_desc or "")
    return UserProfile(
        id=user_id,
        name=name,
        root=root or "",
        auto_audition=bool(auto_audition),
        target_collection=collection,
        target_subcollection=subcollection or "",
    )


def _tag_from_row(row: tuple) -> TagRecord:
    return TagRecord(row[0], row[1], row[2], row[3], row[4] or "")


class Catalog:
    """sqlite-backed persistence for users, collections, tags and exports."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        try:
            self.connection = sqlite3.connect(self.db_path)
            self.connection.executescript(SCHEMA)
            self.connection.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to open catalog {self.db_path}: {e}")
            raise CatalogError(f"Cannot open catalog {self.db_path}: {e}")
        logger.debug(f"Catalog opened at {self.db_path}")

    def _execute(self, statement: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self.connection.execute(statement, params)
        except sqlite3.Error as e:
            logger.error(f"Catalog statement failed: {e}")
            raise CatalogError(f"Catalog error: {e}")
        return cursor

    def _write(self, statement: str, params: tuple = ()) -> sqlite3.Cursor:
        cursor = self._execute(statement, params)
        self.connection.commit()
        return cursor

    def close(self) -> None:
        self.connection.close()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------
    def list_users(self) -> List[UserProfile]:
        rows = self._execute(_USER_SELECT + " ORDER BY u.id").fetchall()
        return [_user_from_row(row) for row in rows]

    def get_user(self, user_id: int) -> UserProfile:
        row = self._execute(_USER_SELECT + " WHERE u.id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"No user with id {user_id}")
        return _user_from_row(row)

    def find_user(self, name: str) -> Optional[UserProfile]:
        row = self._execute(_USER_SELECT + " WHERE u.name = ?", (name,)).fetchone()
        return _user_from_row(row) if row else None

    def get_or_create_user(self, name: str) -> UserProfile:
        """Return the user called ``name``, creating it on first use."""
        name = name.strip()
        if not name:
            raise CatalogError("No user entered")
        existing = self.find_user(name)
        if existing is not None:
            return existing
        cursor = self._write("INSERT INTO User (name) VALUES (?)", (name,))
        logger.info(f"Created user {name}")
        return self.get_user(cursor.lastrowid)

    def update_root(self, user_id: int, root: str) -> None:
        self._write("UPDATE User SET root = ? WHERE id = ?", (root, user_id))

    def update_auto_audition(self, user_id: int, auto_audition: bool) -> None:
        self._write("UPDATE User SET auto_audition = ? WHERE id = ?", (int(auto_audition), user_id))

    def update_target_collection(self, user_id: int, collection_id: int) -> None:
        """Select a collection; this also clears the target subcollection."""
        self.get_collection(collection_id)
        self._write(
            "UPDATE User SET selected_collection = ?, selected_subcollection = '' WHERE id = ?",
            (collection_id, user_id),
        )

    def update_target_subcollection(self, user_id: int, subcollection: str) -> str:
        subcollection = normalize_subcollection(subcollection)
        self._write("UPDATE User SET selected_subcollection = ? WHERE id = ?", (subcollection, user_id))
        return subcollection

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------
    def list_collections(self, user_id: int) -> List[CollectionSummary]:
        rows = self._execute(
            "SELECT id, name, description FROM Collection WHERE user_id = ? ORDER BY name",
            (user_id,),
        ).fetchall()
        return [CollectionSummary(*row) for row in rows]

    def get_collection(self, collection_id: int) -> CollectionSummary:
        row = self._execute(
            "SELECT id, name, description FROM Collection WHERE id = ?", (collection_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"No collection with id {collection_id}")
        return CollectionSummary(*row)

    def create_collection(self, user_id: int, name: str, description: str = "") -> int:
        cursor = self._write(
            "INSERT INTO Collection (user_id, name, description) VALUES (?, ?, ?)",
            (user_id, name, description),
        )
        logger.info(f"Created collection {name}")
        return cursor.lastrowid

    def list_subcollections(self, collection_id: int, filter: Optional[str] = None) -> List[SubcollectionLabel]:
        """Distinct subcollections of a collection, optionally filtered by substring."""
        statement = "SELECT DISTINCT sub_collection FROM CollectionTag WHERE collection_id = ?"
        params: tuple = (collection_id,)
        if filter:
            statement += " AND sub_collection LIKE ? ESCAPE '\\'"
            params += (f"%{_escape_like(filter)}%",)
        statement += " ORDER BY sub_collection ASC"
        rows = self._execute(statement, params).fetchall()
        return [SubcollectionLabel(row[0]) for row in rows]

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------
    def tags_for_directory(self, path: str) -> List[TagRecord]:
        """Tag records whose file lives under ``path``."""
        prefix = _escape_like(path.rstrip(os.sep) + os.sep)
        rows = self._execute(
            _TAG_SELECT + " WHERE t.file_path LIKE ? ESCAPE '\\'", (f"{prefix}%",)
        ).fetchall()
        return [_tag_from_row(row) for row in rows]

    def tags_for_collection(self, collection_id: int) -> List[TagRecord]:
        rows = self._execute(
            _TAG_SELECT + " WHERE col.id = ? ORDER BY ct.sub_collection ASC, ct.name ASC",
            (collection_id,),
        ).fetchall()
        return [_tag_from_row(row) for row in rows]

    def create_tag(self, user_id: int, file_path: str, collection_id: int, name: str,
                   subcollection: str = "") -> None:
        """Tag ``file_path`` into a collection. Repeating a tag is a no-op."""
        if not collection_id:
            raise CatalogError("No target collection")
        self.get_collection(collection_id)
        subcollection = normalize_subcollection(subcollection)
        self._execute(
            "INSERT OR IGNORE INTO Tag (user_id, file_path) VALUES (?, ?)", (user_id, file_path)
        )
        row = self._execute(
            "SELECT id FROM Tag WHERE user_id = ? AND file_path = ?", (user_id, file_path)
        ).fetchone()
        self._write(
            "INSERT OR IGNORE INTO CollectionTag (tag_id, collection_id, name, sub_collection) "
            "VALUES (?, ?, ?, ?)",
            (row[0], collection_id, name, subcollection),
        )
        logger.info(f"Tagged {file_path} into collection {collection_id}{subcollection}")

    # -------------------------------------------------------------------------
    # Exports
    # -------------------------------------------------------------------------
    def create_export_definition(self, user_id: int, name: str, output_dir: str, concrete: bool) -> int:
        """Save an export definition, creating ``output_dir`` when missing."""
        if not name:
            raise ExportError("Export needs a name")
        output_dir = os.path.expanduser(output_dir)
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise ExportError(f"Cannot create {output_dir}: {e.strerror or e}")
        cursor = self._write(
            "INSERT OR REPLACE INTO Export (user_id, name, output_dir, concrete) VALUES (?, ?, ?, ?)",
            (user_id, name, output_dir, int(concrete)),
        )
        logger.info(f"Saved export {name} -> {output_dir}")
        return cursor.lastrowid

    def list_export_definitions(self, user_id: int) -> List[ExportTarget]:
        rows = self._execute(
            "SELECT id, name, output_dir, concrete FROM Export WHERE user_id = ? ORDER BY name DESC",
            (user_id,),
        ).fetchall()
        return [ExportTarget(row[0], row[1], row[2], bool(row[3])) for row in rows]

    def get_export_definition(self, export_id: int) -> ExportTarget:
        row = self._execute(
            "SELECT id, name, output_dir, concrete FROM Export WHERE id = ?", (export_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"No export with id {export_id}")
        return ExportTarget(row[0], row[1], row[2], bool(row[3]))

    def run_export(self, collection_id: int, export_id: int) -> int:
        """Link every tagged file of a collection into the export layout.

        Files land in ``output_dir/export/collection/subcollection/``, hard
        linked for concrete exports and symlinked otherwise. Existing
        destinations are left alone.

        Returns:
            Number of links created

        Raises:
            ExportError: If a tagged file no longer exists, before any link is made
        """
        export = self.get_export_definition(export_id)
        self.get_collection(collection_id)
        tags = self.tags_for_collection(collection_id)

        missing = [tag.file_path for tag in tags if not os.path.exists(tag.file_path)]
        if missing:
            raise ExportError(f"Source doesn't exist: {missing[0]}")

        link = os.link if export.concrete else os.symlink
        created = 0
        for tag in tags:
            directory = os.path.join(
                export.output_dir, export.name, tag.collection_name, tag.subcollection.lstrip("/")
            )
            destination = os.path.join(directory, os.path.basename(tag.file_path))
            if os.path.lexists(destination):
                continue
            try:
                os.makedirs(directory, exist_ok=True)
                link(tag.file_path, destination)
            except OSError as e:
                logger.error(f"Failed to link {tag.file_path}: {e}")
                raise ExportError(f"Failed to create link for {tag.file_path}: {e.strerror or e}")
            created += 1
        logger.info(f"Export {export.name} created {created} links")
        return created
