import json
import logging
import os
from pathlib import Path

import duckdb
from pydantic import ValidationError

from .models import Project, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/compass.duckdb"


class ProjectStore:
    """
    DuckDB-backed persistence for projects.

    Each project is kept as one JSON payload in its wire form (camelCase keys,
    chapter numbers as strings), so external readers see the same shape.
    """

    def __init__(self, db_path: str | Path | None = None):
        actual_db_path = db_path or os.getenv("COMPASS_DUCKDB_PATH", DEFAULT_DB_PATH)
        self.db_path = Path(actual_db_path)
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = duckdb.connect(str(self.db_path))
        self._create_tables()

    def _create_tables(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS projects(
                project_id VARCHAR PRIMARY KEY,
                title TEXT,
                updated_at TEXT,
                payload TEXT -- JSON string of the whole project
            );
            """
        )

    def save(self, project: Project) -> None:
        project.updated_at = utcnow()
        payload = json.dumps(project.to_storage(), ensure_ascii=False)
        self.conn.execute(
            """
            INSERT INTO projects(project_id, title, updated_at, payload)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(project_id) DO UPDATE SET
                title = excluded.title,
                updated_at = excluded.updated_at,
                payload = excluded.payload
            """,
            (project.id, project.title, project.updated_at.isoformat(), payload),
        )

    def get(self, project_id: str) -> Project | None:
        row = self.conn.execute(
            "SELECT payload FROM projects WHERE project_id = ?", (project_id,)
        ).fetchone()
        if row is None:
            return None
        try:
            return Project.model_validate(json.loads(row[0]))
        except (json.JSONDecodeError, ValidationError):
            logger.error(f"Stored payload for project {project_id} is corrupt", exc_info=True)
            raise

    def list_projects(self) -> list[dict[str, str]]:
        rows = self.conn.execute(
            "SELECT project_id, title, updated_at FROM projects ORDER BY updated_at DESC"
        ).fetchall()
        return [{"id": row[0], "title": row[1], "updated_at": row[2]} for row in rows]

    def delete(self, project_id: str) -> bool:
        exists = self.conn.execute(
            "SELECT COUNT(*) FROM projects WHERE project_id = ?", (project_id,)
        ).fetchone()[0]
        if not exists:
            return False
        self.conn.execute("DELETE FROM projects WHERE project_id = ?", (project_id,))
        return True

    def close(self) -> None:
        self.conn.close()
