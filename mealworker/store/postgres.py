"""Postgres-backed profile, meal plan and notification stores."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from mealworker.errors import PersistenceError
from mealworker.store.base import summarize_food_entries

logger = logging.getLogger(__name__)


class PgConnection:
    """Autocommit connection shared by the Postgres stores.

    Opened lazily and reopened after a connection-level failure. Calls are
    serialized, so one instance can be used from every job thread.
    """

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn: psycopg.Connection | None = None
        self._lock = threading.Lock()

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self._url, autocommit=True, row_factory=dict_row)

    def _run(self, query: str, params: Any, fetch: bool) -> Any:
        with self._lock:
            if self._conn is None or self._conn.closed:
                self._conn = self._connect()
            try:
                cur = self._conn.execute(query, params)
                if fetch:
                    return cur.fetchall() if cur.description else []
                return cur.rowcount
            except psycopg.OperationalError:
                self._conn.close()
                self._conn = None
                raise

    def fetch_all(self, query: str, params: Any = None) -> list[dict[str, Any]]:
        return self._run(query, params, fetch=True)

    def execute(self, query: str, params: Any = None) -> int:
        """Run a statement and return the affected row count."""
        return self._run(query, params, fetch=False)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


# ---------------------------------------------------------------------------
# Profiles and food history
# ---------------------------------------------------------------------------

class PostgresProfileStore:
    """Reads ``user_profiles.profile_data`` and the user's food log."""

    def __init__(self, conn: PgConnection):
        self._conn = conn

    def get_profile(self, user_id: str) -> dict[str, Any]:
        rows = self._conn.fetch_all(
            "SELECT profile_data FROM user_profiles WHERE user_id = %s LIMIT 1",
            (user_id,),
        )
        if not rows:
            return {}
        return rows[0].get("profile_data") or {}

    def get_recent_activity(self, user_id: str, days: int = 7) -> str:
        since = date.today() - timedelta(days=days)
        rows = self._conn.fetch_all(
            """
            SELECT e.id, e.date, e.meal_type, e.total_calories,
                   COALESCE(
                       json_agg(json_build_object(
                           'name', i.name, 'calories', i.calories, 'protein', i.protein,
                           'carbs', i.carbs, 'fats', i.fats, 'portion_size', i.portion_size
                       )) FILTER (WHERE i.id IS NOT NULL),
                       '[]'::json
                   ) AS food_items
            FROM food_entries e
            LEFT JOIN food_items i ON i.food_entry_id = e.id
            WHERE e.user_id = %s AND e.date >= %s
            GROUP BY e.id
            ORDER BY e.date DESC
            """,
            (user_id, since),
        )
        return summarize_food_entries(rows, days=days)


# ---------------------------------------------------------------------------
# Meal plans (the generated artifact)
# ---------------------------------------------------------------------------

class PostgresMealPlanStore:
    """Writes generated plan data onto the user's ``meal_plans`` row."""

    def __init__(self, conn: PgConnection):
        self._conn = conn

    def update_artifact(self, artifact_id: str, owner_id: str, payload: dict[str, Any]) -> None:
        try:
            updated = self._conn.execute(
                """
                UPDATE meal_plans
                SET plan_data = %s, status = 'completed', updated_at = NOW()
                WHERE id = %s AND user_id = %s
                """,
                (Jsonb(payload), artifact_id, owner_id),
            )
        except psycopg.Error as e:
            raise PersistenceError(f"Failed to save meal plan: {e}") from e
        if updated == 0:
            raise PersistenceError(
                f"Failed to save meal plan: no meal plan {artifact_id} for user {owner_id}"
            )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class PostgresNotificationDispatcher:
    """Schedules push notifications through the ``schedule_notification`` function."""

    def __init__(self, conn: PgConnection):
        self._conn = conn

    def schedule(
        self,
        user_id: str,
        kind: str,
        payload: dict[str, Any],
        when: datetime,
    ) -> None:
        self._conn.fetch_all(
            """
            SELECT schedule_notification(
                user_id_param => %s,
                notification_type_param => %s,
                title_param => %s,
                body_param => %s,
                scheduled_time_param => %s,
                timezone_param => %s,
                data_param => %s
            )
            """,
            (
                user_id,
                kind,
                payload.get("title", ""),
                payload.get("body", ""),
                when,
                payload.get("timezone", "GMT+00:00"),
                Jsonb(payload.get("data") or {}),
            ),
        )
