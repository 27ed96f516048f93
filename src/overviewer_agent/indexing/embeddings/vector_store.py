"""LanceDB-backed vector store for embedded repository files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_TABLE_NAME = "code_files"


class VectorStore:
    """Wraps LanceDB for cosine similarity search over file summaries."""

    def __init__(self, store_path: Path, dimensions: int = 256) -> None:
        self._store_path = Path(store_path)
        self._dimensions = dimensions
        self._db = None

    def _ensure_db(self):
        if self._db is None:
            import lancedb
            self._store_path.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self._store_path))
        return self._db

    def has_table(self) -> bool:
        return _TABLE_NAME in self._ensure_db().table_names()

    def stored_commit(self) -> Optional[str]:
        """Commit SHA the table was built from, if any."""
        if not self.has_table():
            return None
        try:
            rows = self._ensure_db().open_table(_TABLE_NAME).head(1).to_pydict()
        except Exception:
            logger.debug("Could not read stored commit", exc_info=True)
            return None
        values = rows.get("commit_sha") or []
        return values[0] if values else None

    def replace(self, records: list[dict], vectors: list[list[float]], commit_sha: str) -> int:
        """Drop and recreate the table from parallel record/vector lists."""
        db = self._ensure_db()
        if _TABLE_NAME in db.table_names():
            db.drop_table(_TABLE_NAME)

        rows = []
        for record, vector in zip(records, vectors):
            row = dict(record)
            row["vector"] = vector
            row["commit_sha"] = commit_sha
            rows.append(row)

        table = db.create_table(_TABLE_NAME, schema=self._make_schema())
        if rows:
            table.add(rows)
        return len(rows)

    def query(self, embedding: list[float], n_results: int = 5) -> list[dict]:
        """Nearest files by cosine distance; ``score`` is ``1 - distance``."""
        if not self.has_table():
            return []
        table = self._ensure_db().open_table(_TABLE_NAME)
        hits = table.search(embedding).distance_type("cosine").limit(n_results).to_list()
        return [
            {
                "path": hit["path"],
                "language": hit.get("language", ""),
                "score": 1.0 - float(hit.get("_distance", 1.0)),
            }
            for hit in hits
        ]

    def _make_schema(self):
        import pyarrow as pa
        return pa.schema([
            pa.field("path", pa.string()),
            pa.field("language", pa.string()),
            pa.field("summary", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), self._dimensions)),
            pa.field("commit_sha", pa.string()),
        ])
