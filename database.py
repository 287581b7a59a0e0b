"""
Record store for scan entries, user accounts and drop-off centers.

A store handle is built once at startup (see ``create_store``) and handed to
the ledger and the ranker. Two implementations:

- MongoRecordStore: pymongo backed, used whenever DATABASE_URL is set
- InMemoryRecordStore: process-local, used for development and tests
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from errors import StoreFailure
from schemas import Center, ScanEntry, UserAccount

logger = logging.getLogger(__name__)

SCAN_ENTRIES = "carbonentries"
USERS = "users"
CENTERS = "centers"


class RecordStore(ABC):
    """Abstract persistence used by the ledger and the ranker."""

    @abstractmethod
    def insert_scan_entry(self, entry: ScanEntry) -> str:
        """Append a scan entry and return its id."""

    @abstractmethod
    def find_user_account(self, user_id: str) -> Optional[UserAccount]:
        ...

    @abstractmethod
    def upsert_user_account(
        self, user_id: str, add_delta: float, create_with: Optional[dict] = None
    ) -> UserAccount:
        """Atomically add ``add_delta`` to the user's total.

        The account is created with a zero total first if it does not exist;
        ``create_with`` holds extra fields set only on creation.
        Returns the account as it is after the increment.
        """

    @abstractmethod
    def query_scan_entries(
        self, user_id: str, min_timestamp: Optional[datetime] = None
    ) -> List[ScanEntry]:
        """Entries for ``user_id`` in insertion order, optionally only those at or after ``min_timestamp``."""

    @abstractmethod
    def query_recent_scan_entries(self, user_id: str, limit: int) -> List[ScanEntry]:
        """Up to ``limit`` entries, newest timestamp first; ties newest insert first."""

    @abstractmethod
    def list_all_centers(self) -> List[Center]:
        ...

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class MongoRecordStore(RecordStore):
    def __init__(self, db) -> None:
        self._db = db
        self._client: Optional[MongoClient] = None

    @classmethod
    def connect(cls, url: str, database_name: str, timeout_ms: int = 5000) -> "MongoRecordStore":
        client = MongoClient(
            url,
            tz_aware=True,
            serverSelectionTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
        )
        store = cls(client[database_name])
        store._client = client
        return store

    def ensure_indexes(self) -> None:
        try:
            self._db[SCAN_ENTRIES].create_index([("userId", ASCENDING), ("timestamp", DESCENDING)])
            self._db[USERS].create_index("userId", unique=True)
        except PyMongoError as exc:
            raise StoreFailure("Failed to create indexes") from exc

    def insert_scan_entry(self, entry: ScanEntry) -> str:
        doc = entry.model_dump(by_alias=True)
        try:
            result = self._db[SCAN_ENTRIES].insert_one(doc)
        except PyMongoError as exc:
            raise StoreFailure("Failed to insert scan entry") from exc
        return str(result.inserted_id)

    def find_user_account(self, user_id: str) -> Optional[UserAccount]:
        try:
            raw = self._db[USERS].find_one({"userId": user_id})
        except PyMongoError as exc:
            raise StoreFailure("Failed to read user account") from exc
        if not raw:
            return None
        return UserAccount.model_validate(raw)

    def upsert_user_account(
        self, user_id: str, add_delta: float, create_with: Optional[dict] = None
    ) -> UserAccount:
        on_insert = {"createdAt": datetime.now(timezone.utc)}
        on_insert.update(create_with or {})
        # $inc on a missing field starts from 0, so a new account begins at add_delta
        on_insert.pop("totalCo2Saved", None)
        on_insert.pop("userId", None)
        try:
            raw = self._db[USERS].find_one_and_update(
                {"userId": user_id},
                {"$inc": {"totalCo2Saved": add_delta}, "$setOnInsert": on_insert},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise StoreFailure("Failed to update user account") from exc
        return UserAccount.model_validate(raw)

    def query_scan_entries(
        self, user_id: str, min_timestamp: Optional[datetime] = None
    ) -> List[ScanEntry]:
        query: Dict = {"userId": user_id}
        if min_timestamp is not None:
            query["timestamp"] = {"$gte": min_timestamp}
        try:
            docs = list(self._db[SCAN_ENTRIES].find(query).sort("_id", ASCENDING))
        except PyMongoError as exc:
            raise StoreFailure("Failed to query scan entries") from exc
        return [ScanEntry.model_validate(d) for d in docs]

    def query_recent_scan_entries(self, user_id: str, limit: int) -> List[ScanEntry]:
        try:
            docs = list(
                self._db[SCAN_ENTRIES]
                .find({"userId": user_id})
                .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
                .limit(limit)
            )
        except PyMongoError as exc:
            raise StoreFailure("Failed to query recent scan entries") from exc
        return [ScanEntry.model_validate(d) for d in docs]

    def list_all_centers(self) -> List[Center]:
        try:
            docs = list(self._db[CENTERS].find({}).sort("_id", ASCENDING))
        except PyMongoError as exc:
            raise StoreFailure("Failed to list centers") from exc
        return [Center.model_validate(d) for d in docs]

    def ping(self) -> bool:
        try:
            self._db.command("ping")
        except PyMongoError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class InMemoryRecordStore(RecordStore):
    """Process-local store. State lives only as long as the instance."""

    def __init__(self, centers: Optional[Iterable[Center]] = None) -> None:
        self._lock = threading.Lock()
        self._entries: List[ScanEntry] = []
        self._accounts: Dict[str, UserAccount] = {}
        self._centers: List[Center] = list(centers or [])

    def insert_scan_entry(self, entry: ScanEntry) -> str:
        with self._lock:
            self._entries.append(entry.model_copy())
            return str(len(self._entries))

    def find_user_account(self, user_id: str) -> Optional[UserAccount]:
        with self._lock:
            account = self._accounts.get(user_id)
            return account.model_copy() if account else None

    def upsert_user_account(
        self, user_id: str, add_delta: float, create_with: Optional[dict] = None
    ) -> UserAccount:
        with self._lock:
            account = self._accounts.get(user_id)
            if account is None:
                fields = {"created_at": datetime.now(timezone.utc)}
                fields.update(create_with or {})
                fields.update(user_id=user_id, total_co2_saved=0.0)
                account = UserAccount(**fields)
                self._accounts[user_id] = account
            account.total_co2_saved += add_delta
            return account.model_copy()

    def query_scan_entries(
        self, user_id: str, min_timestamp: Optional[datetime] = None
    ) -> List[ScanEntry]:
        with self._lock:
            return [
                e.model_copy()
                for e in self._entries
                if e.user_id == user_id and (min_timestamp is None or e.timestamp >= min_timestamp)
            ]

    def query_recent_scan_entries(self, user_id: str, limit: int) -> List[ScanEntry]:
        with self._lock:
            mine = [e for e in reversed(self._entries) if e.user_id == user_id]
        # sort is stable, so equal timestamps keep newest-insert-first order
        mine.sort(key=lambda e: e.timestamp, reverse=True)
        return [e.model_copy() for e in mine[:limit]]

    def list_all_centers(self) -> List[Center]:
        with self._lock:
            return [c.model_copy() for c in self._centers]

    def add_centers(self, centers: Iterable[Center]) -> None:
        with self._lock:
            self._centers.extend(centers)


def create_store(settings) -> RecordStore:
    """Build the store described by ``settings`` (a config.Settings)."""
    if settings.database_url:
        store = MongoRecordStore.connect(
            settings.database_url, settings.database_name, settings.store_timeout_ms
        )
        store.ensure_indexes()
        logger.info("Using MongoDB database %r", settings.database_name)
        return store
    logger.warning("DATABASE_URL not set; using in-memory record store")
    return InMemoryRecordStore()
