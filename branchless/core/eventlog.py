"""
Event Log Store -- Durable, append-only event persistence

Events are immutable. Once written, never modified or deleted.
This is the source of truth. Everything else is projection.

Storage: one SQLite file with two tables.
  transactions: one row per logical mutation (a hook call, a move step, an undo)
  events:       one row per event; `cursor` is the rowid, so range scans are indexed

Invariants:
- Cursors strictly increase by one, never reassigned, never deleted
- A transaction is all-or-nothing: its events are visible together or not at all
- Rebuilding writes a new log (copy_to); the log is never compacted in place
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterator, Iterable

import orjson

from .errors import StorageError
from .events import Event, EventType, NewEvent, utc_now

logger = logging.getLogger(__name__)


@dataclass
class LogTransaction:
    """Handle for an open transaction. Collects the cursors it appends."""
    tx_id: int
    message: str
    base_cursor: int
    cursors: List[int] = field(default_factory=list)
    view_cursor: Optional[int] = None

    def set_view_cursor(self, cursor: int):
        """Record where the undo engine's pointer lands when this commits."""
        self.view_cursor = cursor


@dataclass(frozen=True)
class TransactionInfo:
    tx_id: int
    timestamp: str
    message: str
    view_cursor: Optional[int] = None


class EventLogStore:
    """
    SQLite-backed append-only event log.

    Unlike a rebuildable projection, this is the durable layer:
    synchronous=FULL, and every write goes through transaction().
    """

    BATCH_SIZE = 256

    def __init__(self, path: Path):
        self.path = Path(path)
        self._tx: Optional[LogTransaction] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode: transaction boundaries are issued explicitly
            self.conn = sqlite3.connect(str(self.path), isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            self._configure_pragmas()
            self._init_schema()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Could not open event log {self.path}: {e}") from e

    def _configure_pragmas(self):
        self.conn.executescript("""
            PRAGMA journal_mode=WAL;
            PRAGMA synchronous=FULL;
            PRAGMA foreign_keys=ON;
        """)

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS transactions (
                tx_id INTEGER PRIMARY KEY,
                timestamp TEXT NOT NULL,
                message TEXT NOT NULL,
                view_cursor INTEGER
            );

            CREATE TABLE IF NOT EXISTS events (
                cursor INTEGER PRIMARY KEY,
                timestamp TEXT NOT NULL,
                kind TEXT NOT NULL,
                ref_name TEXT,
                old_oid TEXT,
                new_oid TEXT,
                metadata TEXT NOT NULL DEFAULT '{}',
                tx_id INTEGER NOT NULL REFERENCES transactions(tx_id)
            );

            CREATE INDEX IF NOT EXISTS idx_events_tx ON events(tx_id);
        """)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self, message: str) -> Iterator[LogTransaction]:
        """
        Open a write transaction, or join the one already open.

        On normal exit the new cursors are checked for gaps and duplicates,
        then committed. On any exception everything is rolled back and the
        exception propagates.

        A transaction that appended nothing and set no view cursor is
        rolled back instead of committed, so every stored transaction
        means something.
        """
        if self._tx is not None:
            yield self._tx
            return

        try:
            self.conn.execute("BEGIN IMMEDIATE")
            base_cursor = self._max_cursor()
            row = self.conn.execute(
                "INSERT INTO transactions (timestamp, message) VALUES (?, ?)",
                (utc_now(), message)
            )
        except sqlite3.Error as e:
            self._rollback()
            raise StorageError(f"Could not start transaction '{message}': {e}") from e

        tx = LogTransaction(tx_id=row.lastrowid, message=message, base_cursor=base_cursor)
        self._tx = tx
        try:
            yield tx
            self._finish(tx)
        except BaseException:
            self._rollback()
            raise
        finally:
            self._tx = None

    def _finish(self, tx: LogTransaction):
        try:
            if not tx.cursors and tx.view_cursor is None:
                self.conn.execute("ROLLBACK")
                return

            expected = list(range(tx.base_cursor + 1, tx.base_cursor + 1 + len(tx.cursors)))
            if tx.cursors != expected:
                raise StorageError(
                    f"Cursor sequence broken in transaction {tx.tx_id}: "
                    f"expected {expected}, got {tx.cursors}"
                )

            if tx.view_cursor is not None:
                self.conn.execute(
                    "UPDATE transactions SET view_cursor = ? WHERE tx_id = ?",
                    (tx.view_cursor, tx.tx_id)
                )
            self.conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StorageError(f"Could not commit transaction '{tx.message}': {e}") from e

        logger.debug("Committed transaction %d (%s): %d event(s)",
                     tx.tx_id, tx.message, len(tx.cursors))

    def _rollback(self):
        if not self.conn.in_transaction:
            return
        try:
            self.conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # The caller is already propagating the original failure
            logger.warning("Rollback failed: %s", e)

    def _insert(self, event: NewEvent, tx: LogTransaction) -> int:
        try:
            row = self.conn.execute(
                """
                INSERT INTO events (timestamp, kind, ref_name, old_oid, new_oid, metadata, tx_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp,
                    event.type.value,
                    event.ref_name,
                    event.old_oid,
                    event.new_oid,
                    orjson.dumps(event.metadata, option=orjson.OPT_SORT_KEYS).decode(),
                    tx.tx_id,
                )
            )
        except (sqlite3.Error, TypeError) as e:
            raise StorageError(f"Could not append {event.type.value} event: {e}") from e
        tx.cursors.append(row.lastrowid)
        return row.lastrowid

    def append(self, event_kind: EventType, payload: Dict[str, Any]) -> int:
        """
        Append one event. Returns its cursor.

        Args:
            event_kind: One of EventType
            payload: ref_name / old_oid / new_oid / metadata / timestamp,
                     plus an optional transaction "message"
        """
        event = NewEvent.from_payload(event_kind, payload)
        with self.transaction(payload.get("message") or event_kind.value) as tx:
            return self._insert(event, tx)

    def append_event(self, event: NewEvent, message: Optional[str] = None) -> int:
        with self.transaction(message or event.type.value) as tx:
            return self._insert(event, tx)

    def append_all(self, events: Iterable[NewEvent], message: str) -> List[int]:
        """Append a logically atomic batch as one transaction."""
        with self.transaction(message) as tx:
            return [self._insert(event, tx) for event in events]

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _max_cursor(self) -> int:
        row = self.conn.execute("SELECT COALESCE(MAX(cursor), 0) FROM events").fetchone()
        return row[0]

    def current_cursor(self) -> int:
        """Cursor of the latest event (0 for an empty log)."""
        try:
            return self._max_cursor()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e

    def history_head(self) -> int:
        """Latest cursor written outside undo/redo transactions."""
        try:
            row = self.conn.execute("""
                SELECT COALESCE(MAX(e.cursor), 0)
                FROM events e JOIN transactions t ON e.tx_id = t.tx_id
                WHERE t.view_cursor IS NULL
            """).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e
        return row[0]

    def view_cursor(self) -> int:
        """
        Where the user is looking in history.

        Equal to current_cursor() until an undo/redo runs; afterwards it is
        the target that undo/redo recorded, until any other transaction is
        committed.
        """
        try:
            row = self.conn.execute(
                "SELECT view_cursor FROM transactions ORDER BY tx_id DESC LIMIT 1"
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e
        if row is not None and row["view_cursor"] is not None:
            return row["view_cursor"]
        return self.current_cursor()

    def read_since(self, cursor: int = 0, until: Optional[int] = None) -> Iterator[Event]:
        """
        Lazily yield events with cursor > `cursor` (and <= `until`), in order.

        Restartable: call again with the last cursor seen.
        """
        query = "SELECT * FROM events WHERE cursor > ?"
        params: List[Any] = [cursor]
        if until is not None:
            query += " AND cursor <= ?"
            params.append(until)
        query += " ORDER BY cursor"
        return self._iter_rows(query, params)

    def _iter_rows(self, query: str, params: List[Any]) -> Iterator[Event]:
        try:
            rows = self.conn.execute(query, params)
            while True:
                batch = rows.fetchmany(self.BATCH_SIZE)
                if not batch:
                    return
                for row in batch:
                    yield self._row_to_event(row)
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e

    def read_all(self) -> List[Event]:
        return list(self.read_since(0))

    def get(self, cursor: int) -> Optional[Event]:
        try:
            row = self.conn.execute("SELECT * FROM events WHERE cursor = ?", (cursor,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e
        return self._row_to_event(row) if row else None

    def transactions(self) -> List[TransactionInfo]:
        """All committed transactions, oldest first."""
        try:
            rows = self.conn.execute("SELECT * FROM transactions ORDER BY tx_id").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not read event log: {e}") from e
        return [
            TransactionInfo(
                tx_id=row["tx_id"],
                timestamp=row["timestamp"],
                message=row["message"],
                view_cursor=row["view_cursor"]
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            cursor=row["cursor"],
            type=EventType(row["kind"]),
            timestamp=row["timestamp"],
            ref_name=row["ref_name"],
            old_oid=row["old_oid"],
            new_oid=row["new_oid"],
            metadata=orjson.loads(row["metadata"]) if row["metadata"] else {},
            tx_id=row["tx_id"],
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def copy_to(self, path: Path, until: Optional[int] = None) -> 'EventLogStore':
        """
        Write the log prefix up to `until` into a new log at `path`.

        Cursors and transaction ids are preserved. The target must be empty.
        """
        target = EventLogStore(path)
        if target.current_cursor() != 0:
            target.close()
            raise StorageError(f"Refusing to copy into non-empty log {path}")

        try:
            target.conn.execute("BEGIN IMMEDIATE")
            tx_ids = set()
            for event in self.read_since(0, until):
                if event.tx_id not in tx_ids:
                    tx_ids.add(event.tx_id)
                    info = self._transaction_info(event.tx_id)
                    target.conn.execute(
                        "INSERT INTO transactions (tx_id, timestamp, message, view_cursor) VALUES (?, ?, ?, ?)",
                        (info.tx_id, info.timestamp, info.message, info.view_cursor)
                    )
                target.conn.execute(
                    """
                    INSERT INTO events (cursor, timestamp, kind, ref_name, old_oid, new_oid, metadata, tx_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.cursor, event.timestamp, event.type.value, event.ref_name,
                        event.old_oid, event.new_oid,
                        orjson.dumps(event.metadata, option=orjson.OPT_SORT_KEYS).decode(),
                        event.tx_id,
                    )
                )
            target.conn.execute("COMMIT")
        except sqlite3.Error as e:
            target._rollback()
            target.close()
            raise StorageError(f"Could not copy event log to {path}: {e}") from e
        return target

    def _transaction_info(self, tx_id: int) -> TransactionInfo:
        row = self.conn.execute("SELECT * FROM transactions WHERE tx_id = ?", (tx_id,)).fetchone()
        return TransactionInfo(
            tx_id=row["tx_id"],
            timestamp=row["timestamp"],
            message=row["message"],
            view_cursor=row["view_cursor"]
        )

    def close(self):
        try:
            self.conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Could not close event log: {e}") from e

    def __enter__(self) -> 'EventLogStore':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
