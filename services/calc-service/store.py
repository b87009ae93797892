"""
Record store for calculations.

CalculationStore is the contract the service depends on; the Postgres
implementation below is the production one. Every record it returns carries
the creator's username except the row handed back by insert().
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from engine import CalculationRecord, Operation

log = logging.getLogger("calc-service.store")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    username VARCHAR(50) UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    api_key TEXT UNIQUE NOT NULL,
    created_at TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE IF NOT EXISTS calculations (
    id SERIAL PRIMARY KEY,
    user_id INT NOT NULL REFERENCES users(id),
    parent_id INT REFERENCES calculations(id),
    value NUMERIC NOT NULL,
    operation VARCHAR(1) CHECK (operation IN ('+', '-', '*', '/')),
    operand NUMERIC,
    created_at TIMESTAMPTZ DEFAULT now(),
    CONSTRAINT calculations_root_shape CHECK (
        (parent_id IS NULL AND operation IS NULL AND operand IS NULL)
        OR (parent_id IS NOT NULL AND operation IS NOT NULL AND operand IS NOT NULL)
    )
);

CREATE INDEX IF NOT EXISTS idx_calculations_parent_id ON calculations(parent_id);
CREATE INDEX IF NOT EXISTS idx_calculations_created_at ON calculations(created_at);
"""

_SELECT_WITH_USERNAME = """
    SELECT c.id, c.user_id, c.parent_id, c.value, c.operation, c.operand,
           c.created_at, u.username
    FROM calculations c
    LEFT JOIN users u ON u.id = c.user_id
"""


class CalculationStore(Protocol):
    def fetch_by_id(self, calc_id: int) -> CalculationRecord | None: ...

    def fetch_children(self, parent_id: int) -> list[CalculationRecord]: ...

    def fetch_all_with_usernames(self) -> list[CalculationRecord]: ...

    def fetch_subtree(self, root_id: int) -> list[CalculationRecord]: ...

    def insert(
        self,
        user_id: int,
        value: float,
        parent_id: int | None = None,
        operation: Operation | None = None,
        operand: float | None = None,
    ) -> CalculationRecord: ...


def _as_float(value: Decimal | float | None) -> float | None:
    return None if value is None else float(value)


def row_to_record(row: dict[str, Any]) -> CalculationRecord:
    """NUMERIC columns come back as Decimal; arithmetic runs on float."""
    operation = row.get("operation")
    return CalculationRecord(
        id=row["id"],
        user_id=row["user_id"],
        parent_id=row.get("parent_id"),
        value=float(row["value"]),
        operation=Operation(operation) if operation else None,
        operand=_as_float(row.get("operand")),
        created_at=row.get("created_at"),
        username=row.get("username"),
    )


class PostgresStore:
    """psycopg2 access with one short-lived connection per call."""

    def __init__(self, dsn: str, connect: Callable[..., Any] = psycopg2.connect):
        self._dsn = dsn
        self._connect = connect

    def _run(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        fetch: str = "all",
        commit: bool = False,
    ):
        conn = self._connect(self._dsn)
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                if fetch == "one":
                    result = cur.fetchone()
                elif fetch == "all":
                    result = cur.fetchall()
                else:
                    result = None
            if commit:
                conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        self._run(SCHEMA_SQL, fetch="none", commit=True)
        log.info("Calculation schema ensured")


class PostgresCalculationStore(PostgresStore):
    def fetch_by_id(self, calc_id: int) -> CalculationRecord | None:
        row = self._run(_SELECT_WITH_USERNAME + " WHERE c.id = %s", (calc_id,), fetch="one")
        return row_to_record(row) if row else None

    def fetch_children(self, parent_id: int) -> list[CalculationRecord]:
        rows = self._run(
            _SELECT_WITH_USERNAME + " WHERE c.parent_id = %s ORDER BY c.created_at ASC, c.id ASC",
            (parent_id,),
        )
        return [row_to_record(row) for row in rows]

    def fetch_all_with_usernames(self) -> list[CalculationRecord]:
        rows = self._run(_SELECT_WITH_USERNAME + " ORDER BY c.created_at ASC, c.id ASC")
        return [row_to_record(row) for row in rows]

    def fetch_subtree(self, root_id: int) -> list[CalculationRecord]:
        rows = self._run(
            """
            WITH RECURSIVE tree AS (
                SELECT c.*, 0 AS depth
                FROM calculations c
                WHERE c.id = %s

                UNION ALL

                SELECT c.*, t.depth + 1
                FROM calculations c
                JOIN tree t ON c.parent_id = t.id
            )
            SELECT t.id, t.user_id, t.parent_id, t.value, t.operation, t.operand,
                   t.created_at, u.username
            FROM tree t
            LEFT JOIN users u ON u.id = t.user_id
            ORDER BY t.depth, t.created_at ASC, t.id ASC
            """,
            (root_id,),
        )
        return [row_to_record(row) for row in rows]

    def insert(
        self,
        user_id: int,
        value: float,
        parent_id: int | None = None,
        operation: Operation | None = None,
        operand: float | None = None,
    ) -> CalculationRecord:
        row = self._run(
            """
            INSERT INTO calculations (user_id, parent_id, value, operation, operand)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, user_id, parent_id, value, operation, operand, created_at
            """,
            (
                user_id,
                parent_id,
                value,
                operation.value if operation is not None else None,
                operand,
            ),
            fetch="one",
            commit=True,
        )
        return row_to_record(row)
