"""Durable record of detail pages that have already been published."""

from __future__ import annotations

import abc
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, Set

import psycopg

from .config import ConfigError, PipelineConfig

logger = logging.getLogger("shotpipe")

TABLE_NAME = "processed_items"


class LedgerError(Exception):
    """Raised when the durable store cannot be read or written."""


class Ledger(abc.ABC):
    """In-memory identifier set backed by a durable snapshot.

    ``add`` only touches memory; callers invoke ``persist`` afterwards. A
    failed ``persist`` leaves the in-memory set as it was.
    """

    def __init__(self) -> None:
        self._ids: Set[str] = set()

    def contains(self, identifier: str) -> bool:
        return identifier in self._ids

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def add(self, identifier: str) -> None:
        self._ids.add(identifier)

    def reset(self) -> None:
        """Forget every identifier and persist the empty state."""
        self._ids.clear()
        self.persist()

    @abc.abstractmethod
    def load(self) -> None:
        """Replace the in-memory set with the durable contents."""

    @abc.abstractmethod
    def persist(self) -> None:
        """Overwrite the durable contents with the in-memory set."""

    def _replace(self, identifiers: Iterable[str]) -> None:
        self._ids = set(identifiers)


class JsonFileLedger(Ledger):
    """Ledger stored as a JSON array of identifier strings."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def load(self) -> None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No history at %s; starting fresh", self.path)
            self._replace(())
            return
        except OSError as exc:
            raise LedgerError(f"Could not read {self.path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise LedgerError(f"Malformed history file {self.path}: {exc}") from exc
        if not isinstance(data, list) or not all(isinstance(i, str) for i in data):
            raise LedgerError(f"History file {self.path} is not a list of strings")
        self._replace(data)
        logger.info("Loaded %d processed identifiers from %s", len(self), self.path)

    def persist(self) -> None:
        payload = json.dumps(sorted(self._ids), indent=2)
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise LedgerError(f"Could not write {self.path}: {exc}") from exc
        logger.debug("Persisted %d identifiers to %s", len(self), self.path)


class PostgresLedger(Ledger):
    """Ledger stored in a relational table keyed by identifier."""

    def __init__(self, dsn: str) -> None:
        super().__init__()
        self.dsn = dsn

    def _ensure_table(self, cur) -> None:
        cur.execute(
            f"CREATE TABLE IF NOT EXISTS {TABLE_NAME} ("
            "identifier TEXT PRIMARY KEY, "
            "recorded_at TIMESTAMP DEFAULT now())"
        )

    def load(self) -> None:
        try:
            with psycopg.connect(self.dsn) as conn:
                with conn.cursor() as cur:
                    self._ensure_table(cur)
                    cur.execute(f"SELECT identifier FROM {TABLE_NAME}")
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise LedgerError(f"Could not load ledger table: {exc}") from exc
        self._replace(row[0] for row in rows)
        logger.info("Loaded %d processed identifiers from database", len(self))

    def persist(self) -> None:
        snapshot = sorted(self._ids)
        try:
            with psycopg.connect(self.dsn) as conn:
                with conn.cursor() as cur:
                    self._ensure_table(cur)
                    cur.execute(
                        f"DELETE FROM {TABLE_NAME} WHERE NOT (identifier = ANY(%s))",
                        (snapshot,),
                    )
                    if snapshot:
                        cur.execute(
                            f"INSERT INTO {TABLE_NAME} (identifier) "
                            "SELECT unnest(%s::text[]) ON CONFLICT DO NOTHING",
                            (snapshot,),
                        )
        except psycopg.Error as exc:
            raise LedgerError(f"Could not persist ledger table: {exc}") from exc
        logger.debug("Persisted %d identifiers to database", len(snapshot))


def open_ledger(config: PipelineConfig) -> Ledger:
    """Pick the backing store from configuration and load it."""
    ledger: Ledger
    if config.database_url:
        ledger = PostgresLedger(config.database_url)
    else:
        ledger = JsonFileLedger(config.history_path)
    ledger.load()
    return ledger


def migrate_history(config: PipelineConfig) -> int:
    """Merge the JSON history file into the database ledger.

    Returns the number of identifiers newly added to the database.
    """
    if not config.database_url:
        raise ConfigError("DATABASE_URL is required to migrate history")
    if not config.history_path.exists():
        logger.warning("No history file at %s; nothing to migrate", config.history_path)
        return 0

    source = JsonFileLedger(config.history_path)
    source.load()
    target = PostgresLedger(config.database_url)
    target.load()
    before = len(target)
    for identifier in source:
        target.add(identifier)
    target.persist()
    added = len(target) - before
    logger.info(
        "Migrated %d identifiers from %s (%d new)", len(source), config.history_path, added
    )
    return added
