"""
Email link store for access-bot.

The whole email map lives in one JSON file. Every mutation reads the full
map, changes it, and writes it back, so all access goes through a single
asyncio lock and no two read-modify-write cycles can interleave.

That lock only covers file access. Work that decides on a binding and then
acts on it across network calls (verification, audit downgrades) holds the
per-email lock from email_lock() for the whole decision.

Only one process may use a given store file; running several bot instances
against the same file is unsupported.
"""

import asyncio
import contextlib
import json
import logging
import weakref
from collections.abc import AsyncIterator
from pathlib import Path

from .errors import StoreError
from .models import EmailRecord, normalize_email

logger = logging.getLogger(__name__)


class LinkStore:
    """Durable email -> member mapping backed by a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        # Entries disappear once no task holds or waits on them
        self._email_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @contextlib.asynccontextmanager
    async def email_lock(self, email: str) -> AsyncIterator[None]:
        """
        Serialize everything that decides on and acts on one email's binding.

        Independent of the store lock, so get/put/transaction may be used
        while it is held.
        """
        key = normalize_email(email)
        lock = self._email_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._email_locks[key] = lock
        async with lock:
            yield

    def _load(self) -> dict[str, EmailRecord]:
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8-sig") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            # Refuse to continue rather than overwrite existing bindings
            raise StoreError(f"Could not read email map {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise StoreError(f"Email map {self.path} is not a JSON object")

        records: dict[str, EmailRecord] = {}
        for email, data in raw.items():
            if not isinstance(data, dict):
                logger.warning(f"Ignoring malformed entry in email map: {email!r}")
                continue
            record = EmailRecord.from_dict(email, data)
            records[record.email] = record
        return records

    def _save(self, records: dict[str, EmailRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {email: records[email].to_dict() for email in sorted(records)}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise StoreError(f"Could not write email map {self.path}: {e}") from e

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, EmailRecord]]:
        """
        Hold the store lock across a full read-modify-write cycle.

        Yields the complete map; it is written back on exit if it changed.
        Nothing is written if the block raises.
        """
        async with self._lock:
            records = self._load()
            before = {email: r.to_dict() for email, r in records.items()}
            yield records
            after = {email: r.to_dict() for email, r in records.items()}
            if after != before:
                self._save(records)
                logger.debug(f"Email map saved ({len(records)} record(s))")

    async def get(self, email: str) -> EmailRecord | None:
        """Get the record for an email, if any."""
        async with self._lock:
            return self._load().get(normalize_email(email))

    async def put(self, email: str, record: EmailRecord) -> None:
        """Store a record, rewriting the whole map."""
        key = normalize_email(email)
        record.email = key
        async with self.transaction() as records:
            records[key] = record

    async def all(self) -> list[EmailRecord]:
        """Snapshot of every record."""
        async with self._lock:
            return list(self._load().values())
