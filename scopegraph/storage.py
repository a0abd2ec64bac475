"""Persistence layer for project memory and the entity reference graph.

Architecture:
- **Project directories** under ``MEMORY_DIR`` with the active project
  recorded in ``STATE_FILE``.
- **SQLite** (one ``references.db`` per project) for typed, deduplicated
  edges between project entities, queried in either direction and
  traversed with a bounded breadth-first search.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from . import config
from .config import MEMORY_DIR, REFERENCES_DB, STATE_FILE, ensure_base_dirs
from .models import DIRECTIONS, EntityReference, ReferenceInput

logger = logging.getLogger(__name__)


# ===================================================================
# ProjectManager  (manages directories / active project)
# ===================================================================

class ProjectManager:
    """Manage project memory directories and active project state."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not MEMORY_DIR.exists():
            return []
        return sorted([p.name for p in MEMORY_DIR.iterdir() if p.is_dir()])

    def project_dir(self, project_name: str) -> Path:
        return MEMORY_DIR / project_name

    def create_or_get_project(self, project_name: str) -> Path:
        path = self.project_dir(project_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def set_current_project(self, project_name: str) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_project": project_name}, indent=2),
            encoding="utf-8",
        )

    def get_current_project(self) -> Optional[str]:
        if not STATE_FILE.exists():
            return None
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        return payload.get("current_project")

    def unload_project(self) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_project": None}, indent=2),
            encoding="utf-8",
        )

    def delete_project(self, project_name: str) -> bool:
        path = self.project_dir(project_name)
        if not path.exists():
            return False
        for child in sorted(path.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        path.rmdir()
        return True


# ===================================================================
# ReferenceStore  (entity reference graph on SQLite)
# ===================================================================

RelationshipFilter = Union[str, Sequence[str], None]


class ReferenceStore:
    """Directed, typed, deduplicated edges between project entities.

    The store trusts its callers: entity types and relationships are
    validated at the boundary (:class:`~scopegraph.models.ReferenceInput`,
    the CLI), not here.  ``sqlite3`` errors propagate unchanged.

    Args:
        project_dir: Directory holding ``references.db``.
        timeout:     Seconds to wait on a locked database before raising
                     :class:`sqlite3.OperationalError`.
        created_by:  Default creator recorded when a caller passes none.
    """

    def __init__(
        self,
        project_dir: Path,
        timeout: float = config.DEFAULT_DB_TIMEOUT,
        created_by: str = config.DEFAULT_CREATED_BY,
    ) -> None:
        self.project_dir = project_dir
        self.db_path = project_dir / REFERENCES_DB
        self.default_created_by = created_by
        self.conn = sqlite3.connect(str(self.db_path), timeout=timeout)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "ReferenceStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS entity_references (
                id           TEXT PRIMARY KEY,
                source_type  TEXT NOT NULL,
                source_id    TEXT NOT NULL,
                target_type  TEXT NOT NULL,
                target_id    TEXT NOT NULL,
                relationship TEXT NOT NULL,
                metadata     TEXT,
                created_at   INTEGER NOT NULL,
                created_by   TEXT,
                UNIQUE (source_type, source_id, target_type, target_id, relationship)
            )
        """)
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_entity_ref_source "
            "ON entity_references(source_type, source_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_entity_ref_target "
            "ON entity_references(target_type, target_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_entity_ref_relationship "
            "ON entity_references(relationship)"
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def create_reference(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_id: str,
        relationship: str,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> EntityReference:
        """Create one reference, or return the existing row for the same link.

        The id of the returned reference is only fresh when the link did
        not exist before.
        """
        ref = self._new_reference(
            source_type, source_id, target_type, target_id,
            relationship, metadata, created_by,
        )
        with self.conn:
            inserted = self._insert_ignore(ref)
        if inserted:
            return ref

        existing = self.get_reference_by_link(*ref.link_key)
        logger.debug("Reference already exists: %s", ref)
        return existing if existing is not None else ref

    def create_references_bulk(self, inputs: Iterable[ReferenceInput]) -> List[EntityReference]:
        """Insert many references in a single transaction.

        Duplicates (already stored, or repeated within *inputs*) are skipped
        silently.  Any storage error rolls back the whole batch.

        Returns:
            Only the references actually inserted.
        """
        created: List[EntityReference] = []
        with self.conn:
            for item in inputs:
                ref = self._new_reference(
                    item.source_type, item.source_id, item.target_type,
                    item.target_id, item.relationship, item.metadata, item.created_by,
                )
                if self._insert_ignore(ref):
                    created.append(ref)
        logger.debug("Bulk insert stored %d new reference(s)", len(created))
        return created

    def _new_reference(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_id: str,
        relationship: str,
        metadata: Optional[Dict[str, Any]],
        created_by: Optional[str],
    ) -> EntityReference:
        return EntityReference(
            id=f"ref-{uuid.uuid4().hex[:16]}",
            source_type=source_type,
            source_id=source_id,
            target_type=target_type,
            target_id=target_id,
            relationship=relationship,
            metadata=metadata or None,
            created_at=int(time.time() * 1000),
            created_by=created_by or self.default_created_by,
        )

    def _insert_ignore(self, ref: EntityReference) -> bool:
        cur = self.conn.execute(
            """
            INSERT OR IGNORE INTO entity_references (
                id, source_type, source_id, target_type, target_id,
                relationship, metadata, created_at, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                ref.id,
                ref.source_type,
                ref.source_id,
                ref.target_type,
                ref.target_id,
                ref.relationship,
                json.dumps(ref.metadata) if ref.metadata else None,
                ref.created_at,
                ref.created_by,
            ),
        )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_reference(self, reference_id: str) -> bool:
        with self.conn:
            cur = self.conn.execute(
                "DELETE FROM entity_references WHERE id = ?", (reference_id,),
            )
        return cur.rowcount > 0

    def delete_reference_by_link(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_id: str,
        relationship: str,
    ) -> bool:
        with self.conn:
            cur = self.conn.execute(
                """
                DELETE FROM entity_references
                WHERE source_type = ? AND source_id = ?
                  AND target_type = ? AND target_id = ?
                  AND relationship = ?
                """,
                (source_type, source_id, target_type, target_id, relationship),
            )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_reference(self, reference_id: str) -> Optional[EntityReference]:
        row = self.conn.execute(
            "SELECT * FROM entity_references WHERE id = ?", (reference_id,),
        ).fetchone()
        return _row_to_reference(row) if row else None

    def get_reference_by_link(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_id: str,
        relationship: str,
    ) -> Optional[EntityReference]:
        row = self.conn.execute(
            """
            SELECT * FROM entity_references
            WHERE source_type = ? AND source_id = ?
              AND target_type = ? AND target_id = ?
              AND relationship = ?
            """,
            (source_type, source_id, target_type, target_id, relationship),
        ).fetchone()
        return _row_to_reference(row) if row else None

    def query(
        self,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        direction: str = "both",
        relationship: RelationshipFilter = None,
        limit: int = config.DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> List[EntityReference]:
        """Query references, newest first.

        When *entity_type* and *entity_id* are both given the lookup is
        anchored on that entity and *direction* picks the side it must be
        on (``forward`` = source, ``reverse`` = target, ``both``).
        Otherwise the ``source_*``/``target_*`` filters apply strictly.

        *limit* is capped at 500.
        """
        where, params = _build_filters(
            source_type, source_id, target_type, target_id,
            entity_type, entity_id, direction, relationship,
        )
        limit = max(0, min(limit, config.MAX_QUERY_LIMIT))
        rows = self.conn.execute(
            f"SELECT * FROM entity_references {where} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            params + [limit, max(0, offset)],
        ).fetchall()
        return [_row_to_reference(row) for row in rows]

    def count(
        self,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        direction: str = "both",
        relationship: RelationshipFilter = None,
    ) -> int:
        where, params = _build_filters(
            source_type, source_id, target_type, target_id,
            entity_type, entity_id, direction, relationship,
        )
        row = self.conn.execute(
            f"SELECT COUNT(*) FROM entity_references {where}", params,
        ).fetchone()
        return int(row[0]) if row else 0

    def get_related_entities(
        self,
        entity_type: str,
        entity_id: str,
        max_depth: int = 1,
    ) -> List[EntityReference]:
        """Collect every reference reachable within *max_depth* hops.

        Breadth-first over forward and reverse edges.  Each ``(type, id)``
        pair is expanded at most once and each edge is returned at most
        once, so cycles terminate.  Edges touching entities at the depth
        bound are not followed.
        """
        start = (entity_type, entity_id)
        visited: Set[Tuple[str, str]] = {start}
        seen_refs: Set[str] = set()
        result: List[EntityReference] = []
        queue = deque([(start, 0)])

        while queue:
            (current_type, current_id), depth = queue.popleft()
            if depth >= max_depth:
                continue

            for ref in self._edges_touching(current_type, current_id):
                if ref.id not in seen_refs:
                    seen_refs.add(ref.id)
                    result.append(ref)

                is_source = ref.source_type == current_type and ref.source_id == current_id
                nxt = (ref.target_type, ref.target_id) if is_source else (ref.source_type, ref.source_id)
                if nxt not in visited:
                    visited.add(nxt)
                    queue.append((nxt, depth + 1))

        return result

    def _edges_touching(self, entity_type: str, entity_id: str) -> List[EntityReference]:
        rows = self.conn.execute(
            """
            SELECT * FROM entity_references
            WHERE (source_type = ? AND source_id = ?)
               OR (target_type = ? AND target_id = ?)
            ORDER BY created_at DESC, rowid DESC
            """,
            (entity_type, entity_id, entity_type, entity_id),
        ).fetchall()
        return [_row_to_reference(row) for row in rows]


# ===================================================================
# Helpers
# ===================================================================

def _build_filters(
    source_type: Optional[str],
    source_id: Optional[str],
    target_type: Optional[str],
    target_id: Optional[str],
    entity_type: Optional[str],
    entity_id: Optional[str],
    direction: str,
    relationship: RelationshipFilter,
) -> Tuple[str, List[Any]]:
    conditions: List[str] = []
    params: List[Any] = []

    if entity_type and entity_id:
        if direction not in DIRECTIONS:
            raise ValueError(f"Invalid direction {direction!r}; expected one of: {', '.join(DIRECTIONS)}")
        if direction == "forward":
            conditions.append("(source_type = ? AND source_id = ?)")
            params.extend([entity_type, entity_id])
        elif direction == "reverse":
            conditions.append("(target_type = ? AND target_id = ?)")
            params.extend([entity_type, entity_id])
        else:
            conditions.append(
                "((source_type = ? AND source_id = ?) OR (target_type = ? AND target_id = ?))"
            )
            params.extend([entity_type, entity_id, entity_type, entity_id])
    else:
        for column, value in (
            ("source_type", source_type),
            ("source_id", source_id),
            ("target_type", target_type),
            ("target_id", target_id),
        ):
            if value:
                conditions.append(f"{column} = ?")
                params.append(value)

    if relationship:
        if isinstance(relationship, str):
            conditions.append("relationship = ?")
            params.append(relationship)
        else:
            rels = list(relationship)
            conditions.append(f"relationship IN ({','.join('?' * len(rels))})")
            params.extend(rels)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


def _row_to_reference(row: sqlite3.Row) -> EntityReference:
    raw_meta = row["metadata"]
    try:
        metadata = json.loads(raw_meta) if raw_meta else None
    except json.JSONDecodeError:
        metadata = {"raw": raw_meta}
    return EntityReference(
        id=row["id"],
        source_type=row["source_type"],
        source_id=row["source_id"],
        target_type=row["target_type"],
        target_id=row["target_id"],
        relationship=row["relationship"],
        metadata=metadata,
        created_at=row["created_at"],
        created_by=row["created_by"],
    )
