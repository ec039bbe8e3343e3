"""
Relational storage for HeartLens
SQLite tables for analysis requests, text analyses and Gottman analyses
"""

import json
import sqlite3
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

from . import config

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def _loads(value: Optional[str]) -> Any:
    return None if value is None else json.loads(value)


class AnalysisStore:
    """SQLite store standing in for the hosted relational database."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """
        Initialize store.

        Args:
            db_path: SQLite file (default from HEARTLENS_DB_PATH)
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS analysis_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    person_a_name TEXT,
                    person_b_name TEXT,
                    screenshot_count INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    results TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS analysis_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    raw_text TEXT,
                    ocr_confidence REAL,
                    analysis_results TEXT,
                    category TEXT,
                    subject_a_score REAL,
                    subject_b_score REAL,
                    comparison TEXT,
                    subject_a_insights TEXT,
                    subject_b_insights TEXT,
                    message_patterns TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS gottman_analyses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    horseman TEXT NOT NULL,
                    description TEXT,
                    presence REAL,
                    examples TEXT,
                    recommendations TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_results_user ON analysis_results(user_id);
                CREATE INDEX IF NOT EXISTS idx_gottman_user ON gottman_analyses(user_id);
            """)
        logger.debug(f"Storage database initialized at {self.db_path}")

    # ------------------------------------------------------------------
    # Analysis requests
    # ------------------------------------------------------------------

    def create_analysis_request(
        self,
        user_id: str,
        person_a_name: Optional[str],
        person_b_name: Optional[str],
        screenshot_count: int,
    ) -> int:
        """Insert a request row in the processing state. Returns its id."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO analysis_requests
                    (user_id, person_a_name, person_b_name, screenshot_count, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id or "anonymous", person_a_name, person_b_name, screenshot_count,
                 STATUS_PROCESSING, _now())
            )
            request_id = cursor.lastrowid
        logger.info(f"Created analysis request {request_id} for user {user_id}")
        return request_id

    def complete_analysis_request(self, request_id: int, results: Dict[str, Any]) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE analysis_requests SET status = ?, results = ?, completed_at = ? WHERE id = ?",
                (STATUS_COMPLETED, _dumps(results), _now(), request_id)
            )
            updated = cursor.rowcount > 0
        if not updated:
            logger.warning(f"Analysis request {request_id} not found")
        return updated

    def fail_analysis_request(self, request_id: int, error: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE analysis_requests SET status = ?, error = ?, completed_at = ? WHERE id = ?",
                (STATUS_FAILED, error, _now(), request_id)
            )
            return cursor.rowcount > 0

    def get_analysis_request(self, request_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM analysis_requests WHERE id = ?", (request_id,)
            ).fetchone()
        if row is None:
            return None
        record = dict(row)
        record["results"] = _loads(record["results"])
        return record

    # ------------------------------------------------------------------
    # Text analyses (single-screenshot scorer output)
    # ------------------------------------------------------------------

    def insert_text_analysis(self, user_id: str, analysis: Dict[str, Any]) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO analysis_results (user_id, raw_text, ocr_confidence, analysis_results, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, analysis.get("text"), analysis.get("confidence"), _dumps(analysis), _now())
            )
            return cursor.lastrowid

    def list_text_analyses(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, raw_text, ocr_confidence, analysis_results, created_at
                FROM analysis_results
                WHERE user_id = ? AND analysis_results IS NOT NULL
                ORDER BY id
                """,
                (user_id,)
            ).fetchall()
        records = []
        for row in rows:
            record = dict(row)
            record["analysis_results"] = _loads(record["analysis_results"])
            records.append(record)
        return records

    # ------------------------------------------------------------------
    # Category / Gottman sync
    # ------------------------------------------------------------------

    def sync_analysis(
        self,
        user_id: str,
        analysis_results: Optional[List[Dict[str, Any]]] = None,
        gottman_analysis: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, int]:
        """
        Replace a user's category results and Gottman analyses in one transaction.

        Text-analysis rows from the scorer are kept.

        Returns:
            {"analysis_results": n_inserted, "gottman_analyses": n_inserted}
        """
        if not user_id:
            raise ValueError("User ID is required")

        analysis_results = analysis_results or []
        gottman_analysis = gottman_analysis or []
        now = _now()

        with self._connect() as conn:
            conn.execute(
                "DELETE FROM analysis_results WHERE user_id = ? AND category IS NOT NULL", (user_id,)
            )
            conn.execute("DELETE FROM gottman_analyses WHERE user_id = ?", (user_id,))

            conn.executemany(
                """
                INSERT INTO analysis_results
                    (user_id, category, subject_a_score, subject_b_score, comparison,
                     subject_a_insights, subject_b_insights, message_patterns, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (user_id, r["category"], r.get("subject_a_score"), r.get("subject_b_score"),
                     r.get("comparison"), _dumps(r.get("subject_a_insights")),
                     _dumps(r.get("subject_b_insights")), _dumps(r.get("message_patterns")), now)
                    for r in analysis_results
                ]
            )
            conn.executemany(
                """
                INSERT INTO gottman_analyses
                    (user_id, horseman, description, presence, examples, recommendations, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (user_id, g["horseman"], g.get("description"), g.get("presence"),
                     _dumps(g.get("examples")), _dumps(g.get("recommendations")), now)
                    for g in gottman_analysis
                ]
            )

        logger.info(
            f"Synced analysis for {user_id}: {len(analysis_results)} results, "
            f"{len(gottman_analysis)} Gottman analyses"
        )
        return {"analysis_results": len(analysis_results), "gottman_analyses": len(gottman_analysis)}

    def list_category_results(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, category, subject_a_score, subject_b_score, comparison,
                       subject_a_insights, subject_b_insights, message_patterns
                FROM analysis_results
                WHERE user_id = ? AND category IS NOT NULL
                ORDER BY id
                """,
                (user_id,)
            ).fetchall()
        records = []
        for row in rows:
            record = dict(row)
            for key in ("subject_a_insights", "subject_b_insights", "message_patterns"):
                record[key] = _loads(record[key])
            records.append(record)
        return records

    def list_gottman_analyses(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, horseman, description, presence, examples, recommendations
                FROM gottman_analyses WHERE user_id = ? ORDER BY id
                """,
                (user_id,)
            ).fetchall()
        records = []
        for row in rows:
            record = dict(row)
            record["examples"] = _loads(record["examples"])
            record["recommendations"] = _loads(record["recommendations"])
            records.append(record)
        return records

    def ping(self) -> bool:
        """Check the database is reachable."""
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.error(f"Database health check failed: {e}")
            return False
