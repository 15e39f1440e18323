from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, MetaData, String, Table, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .configuration import LocalStateConfig, RemoteDatabaseConfig, StorageConfig
from .models import Family, Person
from .store import AppState

logger = logging.getLogger(__name__)

Record = Union[Person, Family]


@dataclass(frozen=True)
class PersistResult:
    """
    Outcome of writing a person or family.

    ``ok``: stored everywhere it should be. ``degraded``: the remote write
    failed, the record is kept locally and queued for replay. ``failed``: not
    even the local copy could be written; ``reason`` tells the caller why.
    """

    status: Literal["ok", "degraded", "failed"]
    record: Optional[Record] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, record: Record) -> "PersistResult":
        return cls(status="ok", record=record)

    @classmethod
    def degraded(cls, record: Record, reason: str) -> "PersistResult":
        return cls(status="degraded", record=record, reason=reason)

    @classmethod
    def failed(cls, reason: str, record: Optional[Record] = None) -> "PersistResult":
        return cls(status="failed", record=record, reason=reason)


def _record_payload(record: Record) -> Dict[str, Any]:
    payload = {}
    for f in fields(record):
        value = getattr(record, f.name)
        payload[f.name] = value.isoformat() if isinstance(value, date) else value
    return payload


class LocalStateStorage:
    def __init__(self, config: LocalStateConfig):
        self.config = config
        self.path = Path(config.path).expanduser()
        self.pending_path = Path(config.pending_path).expanduser()

    def save_state(self, state: AppState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"updated_at": datetime.utcnow().isoformat(), "state": state.as_dict()}
        self.path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    def load_state(self) -> AppState:
        if not self.path.exists():
            return AppState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return AppState.from_dict(data.get("state", {}))
        except (OSError, json.JSONDecodeError, TypeError, ValueError, KeyError) as exc:
            backup = self._quarantine()
            logger.warning("Ignoring unreadable state file %s (moved to %s): %s", self.path, backup, exc)
            return AppState()

    def _quarantine(self) -> Path:
        # Keep the unreadable file so the next save_state cannot overwrite it.
        stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")
        backup = self.path.with_name(f"{self.path.stem}.corrupt-{stamp}{self.path.suffix}")
        self.path.replace(backup)
        return backup

    def load_pending(self) -> List[Dict[str, Any]]:
        if not self.pending_path.exists():
            return []
        try:
            data = json.loads(self.pending_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable pending queue %s: %s", self.pending_path, exc)
            return []
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def write_pending(self, entries: List[Dict[str, Any]]) -> None:
        self.pending_path.parent.mkdir(parents=True, exist_ok=True)
        self.pending_path.write_text(json.dumps(entries, ensure_ascii=False), encoding="utf-8")

    def enqueue(self, kind: str, record: Record) -> None:
        entries = self.load_pending()
        entries.append({"kind": kind, "queued_at": datetime.utcnow().isoformat(), "record": _record_payload(record)})
        self.write_pending(entries)


class DatabaseStorage:
    def __init__(self, config: RemoteDatabaseConfig, engine: Optional[Engine] = None):
        if engine is None and not config.url:
            raise ValueError("Remote database URL is not configured.")
        self.config = config
        self.engine = engine or create_engine(config.url)
        self.metadata = MetaData()
        self.families = Table(
            config.families_table,
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("name", String(255), nullable=False),
            Column("created_at", DateTime(timezone=True), server_default=func.now()),
        )
        self.persons = Table(
            config.persons_table,
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("first_name", String(128), nullable=False),
            Column("last_name", String(128), nullable=False),
            Column("email", String(255)),
            Column("phone", String(64)),
            Column("birth_year", Integer),
            Column("birth_date", Date),
            Column("street_address", String(255)),
            Column("postal_code", String(16)),
            Column("city", String(128)),
            Column("is_admin", Boolean, nullable=False, default=False),
            Column("is_active", Boolean, nullable=False, default=True),
            Column("core_role", String(32), nullable=False),
            Column("family_id", String(64)),
            Column("created_at", DateTime(timezone=True), server_default=func.now()),
        )
        self.metadata.create_all(self.engine)

    def save_person(self, person: Person) -> None:
        row = {f.name: getattr(person, f.name) for f in fields(person)}
        with self.engine.begin() as connection:
            connection.execute(self.persons.insert().values(**row))

    def save_family(self, family: Family) -> None:
        with self.engine.begin() as connection:
            connection.execute(self.families.insert().values(id=family.id, name=family.name))


class StorageManager:
    """
    Writes people and families locally and, when enabled, to the remote database.

    The local state file is written by the ``StateStore`` hook; this class
    only covers the remote write and the replay queue used when it fails.
    """

    def __init__(self, config: StorageConfig, remote: Optional[DatabaseStorage] = None):
        self.config = config
        self.local = LocalStateStorage(config.local_state)
        self._remote = remote

    def _get_remote(self) -> Optional[DatabaseStorage]:
        if self._remote is None and self.config.remote_database.enable:
            self._remote = DatabaseStorage(self.config.remote_database)
        return self._remote

    def save_person(self, person: Person) -> PersistResult:
        return self._persist("person", person)

    def save_family(self, family: Family) -> PersistResult:
        return self._persist("family", family)

    def _persist(self, kind: str, record: Record) -> PersistResult:
        if not self.config.remote_database.enable:
            return PersistResult.ok(record)
        try:
            self._write_remote(kind, record)
            return PersistResult.ok(record)
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning("Failed to persist %s %s to database: %s", kind, record.id, exc)
            reason = f"Remote database unavailable: {exc}"
        try:
            self.local.enqueue(kind, record)
        except OSError as exc:
            logger.warning("Failed to queue %s %s locally: %s", kind, record.id, exc)
            return PersistResult.failed(f"{reason}; local queue unavailable: {exc}", record)
        return PersistResult.degraded(record, reason)

    def _write_remote(self, kind: str, record: Record) -> None:
        remote = self._get_remote()
        if remote is None:
            raise ValueError("Remote database is not configured.")
        if kind == "person":
            remote.save_person(record)
        else:
            remote.save_family(record)

    def flush_pending(self) -> int:
        """
        Replay queued records against the remote database.

        Returns how many were written; entries that fail again stay queued.
        """

        entries = self.local.load_pending()
        if not entries:
            return 0
        remaining: List[Dict[str, Any]] = []
        written = 0
        for entry in entries:
            try:
                record = _record_from_entry(entry)
                self._write_remote(entry["kind"], record)
                written += 1
            except (SQLAlchemyError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Replay of queued %s failed: %s", entry.get("kind"), exc)
                remaining.append(entry)
        self.local.write_pending(remaining)
        return written


def _record_from_entry(entry: Dict[str, Any]) -> Record:
    payload = dict(entry["record"])
    if entry["kind"] == "family":
        return Family(**payload)
    birth_date = payload.get("birth_date")
    payload["birth_date"] = date.fromisoformat(birth_date) if birth_date else None
    return Person(**payload)
