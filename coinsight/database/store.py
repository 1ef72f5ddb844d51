"""
Table-oriented store interface and the SQLite-backed implementation.

Rows travel as plain dicts keyed by column name. Filters are equality
matches combined with AND; a ``None`` filter value matches ``IS NULL``.
Order strings follow the ``column.asc`` / ``column.desc`` convention used by
PostgREST so the same call works against either backend.
"""

import logging
import re
import sqlite3
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from .connection import Database

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
PRICE_ALERTS = "price_alerts"
USER_SETTINGS = "user_settings"

PRIMARY_KEYS = {
    NOTIFICATIONS: "id",
    PRICE_ALERTS: "id",
    USER_SETTINGS: "user_id",
}

BOOLEAN_COLUMNS = {
    "read",
    "is_active",
    "portfolio_updates",
    "market_trends",
    "price_alerts_enabled",
}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

Row = dict[str, Any]
Filters = dict[str, Any]


class StoreError(Exception):
    """Raised when the store rejects or cannot complete an operation."""

    pass


def parse_order(order: str) -> tuple[str, bool]:
    """
    Split an order string into column and direction.

    Args:
        order: "column", "column.asc" or "column.desc"

    Returns:
        (column, descending)
    """
    column, _, direction = order.partition(".")
    direction = direction or "asc"
    if direction not in ("asc", "desc"):
        raise StoreError(f"Invalid order direction: {order}")
    return column, direction == "desc"


class RemoteStore(ABC):
    """Abstract base class for the authoritative record store."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        """
        Fetch rows matching all filters.

        Raises:
            StoreError: If the query fails
        """
        pass

    @abstractmethod
    def insert(self, table: str, records: Union[Row, list[Row]]) -> list[Row]:
        """
        Insert one or many rows.

        Returns:
            The inserted rows as stored, including generated keys

        Raises:
            StoreError: If the insert is rejected
        """
        pass

    @abstractmethod
    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        """
        Apply patch to every row matching filters.

        Returns:
            The updated rows; empty when nothing matched

        Raises:
            StoreError: If the update is rejected
        """
        pass

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> int:
        """
        Delete rows matching filters.

        Returns:
            Number of deleted rows

        Raises:
            StoreError: If the delete is rejected
        """
        pass

    def exists(self, table: str, filters: Filters) -> bool:
        """Check whether any row matches filters."""
        return len(self.select(table, filters, limit=1)) > 0


class SQLiteStore(RemoteStore):
    """RemoteStore over a local SQLite database."""

    def __init__(self, db: Database, channel=None):
        """
        Initialize SQLite store.

        Args:
            db: Initialized Database instance
            channel: Optional push channel notified of every inserted and
                deleted row
        """
        self.db = db
        self.channel = channel

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        self._check_table(table)
        where, params = self._where(filters or {})
        sql = f"SELECT * FROM {table}{where}"

        if order:
            column, descending = parse_order(order)
            self._check_identifier(column)
            # rowid keeps insertion order stable among equal sort keys
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {column} {direction}, rowid {direction}"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        try:
            cursor = self.db.connection.cursor()
            cursor.execute(sql, params)
            return [self._row_to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(f"Select on {table} failed: {e}") from e

    def insert(self, table: str, records: Union[Row, list[Row]]) -> list[Row]:
        self._check_table(table)
        if isinstance(records, dict):
            records = [records]
        if not records:
            return []

        key = PRIMARY_KEYS[table]
        prepared = []
        for record in records:
            row = dict(record)
            if row.get(key) is None:
                if key != "id":
                    raise StoreError(f"Missing primary key {key} for {table}")
                row["id"] = str(uuid.uuid4())
            for column in row:
                self._check_identifier(column)
            prepared.append(row)

        cursor = self.db.connection.cursor()
        try:
            for row in prepared:
                columns = ", ".join(row.keys())
                placeholders = ", ".join("?" for _ in row)
                cursor.execute(
                    f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                    [self._to_sql(value) for value in row.values()],
                )
            self.db.connection.commit()
        except sqlite3.Error as e:
            self.db.connection.rollback()
            raise StoreError(f"Insert into {table} failed: {e}") from e

        inserted = self._fetch_by_keys(table, [row[key] for row in prepared])

        if self.channel is not None:
            for row in inserted:
                self.channel.publish(table, row)

        return inserted

    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        self._check_table(table)
        if not patch:
            raise StoreError("Update patch is empty")

        key = PRIMARY_KEYS[table]
        where, params = self._where(filters)
        for column in patch:
            self._check_identifier(column)
        assignments = ", ".join(f"{column} = ?" for column in patch)

        connection = self.db.connection
        cursor = connection.cursor()
        try:
            # Hold the write lock from the key lookup through the update so
            # another connection cannot change the matched rows in between
            if not connection.in_transaction:
                cursor.execute("BEGIN IMMEDIATE")
            cursor.execute(f"SELECT {key} FROM {table}{where}", params)
            keys = [row[0] for row in cursor.fetchall()]
            if not keys:
                connection.rollback()
                return []
            cursor.execute(
                f"UPDATE {table} SET {assignments}{where}",
                [self._to_sql(value) for value in patch.values()] + params,
            )
            updated = cursor.rowcount
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            raise StoreError(f"Update on {table} failed: {e}") from e

        if updated == 0:
            return []
        return self._fetch_by_keys(table, keys)

    def delete(self, table: str, filters: Filters) -> int:
        self._check_table(table)
        where, params = self._where(filters)

        connection = self.db.connection
        cursor = connection.cursor()
        removed = []
        try:
            if self.channel is not None:
                # Capture the rows under the write lock so retractions match
                # exactly what was deleted
                if not connection.in_transaction:
                    cursor.execute("BEGIN IMMEDIATE")
                cursor.execute(f"SELECT * FROM {table}{where}", params)
                removed = [self._row_to_dict(row) for row in cursor.fetchall()]
            cursor.execute(f"DELETE FROM {table}{where}", params)
            deleted = cursor.rowcount
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            raise StoreError(f"Delete from {table} failed: {e}") from e

        for row in removed:
            self.channel.retract(table, row)

        return deleted

    def _fetch_by_keys(self, table: str, keys: list[Any]) -> list[Row]:
        """Load rows by primary key, preserving the order of keys."""
        key = PRIMARY_KEYS[table]
        placeholders = ", ".join("?" for _ in keys)
        try:
            cursor = self.db.connection.cursor()
            cursor.execute(
                f"SELECT * FROM {table} WHERE {key} IN ({placeholders})", keys
            )
            rows = {row[key]: self._row_to_dict(row) for row in cursor.fetchall()}
        except sqlite3.Error as e:
            raise StoreError(f"Select on {table} failed: {e}") from e
        return [rows[k] for k in keys if k in rows]

    def _where(self, filters: Filters) -> tuple[str, list[Any]]:
        """Build a WHERE clause from equality filters."""
        if not filters:
            return "", []

        clauses = []
        params = []
        for column, value in filters.items():
            self._check_identifier(column)
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(self._to_sql(value))
        return " WHERE " + " AND ".join(clauses), params

    def _check_table(self, table: str) -> None:
        if table not in PRIMARY_KEYS:
            raise StoreError(f"Unknown table: {table}")

    def _check_identifier(self, name: str) -> None:
        if not _IDENTIFIER.match(name):
            raise StoreError(f"Invalid column name: {name}")

    def _to_sql(self, value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    def _row_to_dict(self, row: sqlite3.Row) -> Row:
        """Convert database row to a plain dict."""
        result = dict(row)
        for column in BOOLEAN_COLUMNS.intersection(result):
            if result[column] is not None:
                result[column] = bool(result[column])
        return result
