"""SQLite-backed store for evaluation runs and their per-item results."""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from campus_rag.evaluation.metrics import EvalCaseResult
from campus_rag.exceptions import PersistenceError
from campus_rag.storage.migrations import initialize_db


class SQLiteEvaluationStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_db(self._db_path)

    async def save_run(self, metrics: dict, results: list[EvalCaseResult], with_answer: bool) -> int:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                cursor = await db.execute(
                    "INSERT INTO eval_runs (total, hit_rate, avg_similarity, error_count, with_answer, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        metrics["total"],
                        metrics["hit_rate"],
                        metrics["avg_similarity"],
                        metrics["error_count"],
                        int(with_answer),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                run_id = cursor.lastrowid
                await db.executemany(
                    "INSERT INTO eval_results (run_id, item_id, question, hit, similarity, answer, error) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [
                        (run_id, r.item_id, r.question, int(r.hit), r.similarity, r.answer, r.error)
                        for r in results
                    ],
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save evaluation run: {e}") from e
        return run_id

    async def get_run(self, run_id: int) -> dict | None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute("SELECT * FROM eval_runs WHERE run_id = ?", (run_id,)) as cursor:
                    run = await cursor.fetchone()
                if run is None:
                    return None
                async with db.execute(
                    "SELECT * FROM eval_results WHERE run_id = ? ORDER BY result_id", (run_id,)
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to load evaluation run {run_id}: {e}") from e

        return {
            "run_id": run["run_id"],
            "total": run["total"],
            "hit_rate": run["hit_rate"],
            "avg_similarity": run["avg_similarity"],
            "error_count": run["error_count"],
            "results": [
                EvalCaseResult(
                    item_id=row["item_id"],
                    question=row["question"],
                    hit=bool(row["hit"]),
                    similarity=row["similarity"],
                    answer=row["answer"],
                    error=row["error"],
                )
                for row in rows
            ],
        }
