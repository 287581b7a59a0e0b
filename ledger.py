"""
Carbon ledger: turns scans into CO2-saved entries and summarizes them.

Totals are accumulated from unrounded values; rounding to 4 decimals only
happens on the way out.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from database import RecordStore
from emissions import EmissionTable, normalize_category
from errors import InvalidInput, UnknownCategory, UserNotFound
from schemas import CategoryTotal, ScanEntry, ScanResult, Summary

logger = logging.getLogger(__name__)

DISPLAY_DECIMALS = 4
WEEKLY_WINDOW = timedelta(days=7)
RECENT_ENTRIES_LIMIT = 20
MAX_QUANTITY = 1_000_000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _rounded_entry(entry: ScanEntry) -> ScanEntry:
    return entry.model_copy(update={
        "total_weight": round(entry.total_weight, DISPLAY_DECIMALS),
        "co2_saved": round(entry.co2_saved, DISPLAY_DECIMALS),
    })


def _require_text(value, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field_name} is required")
    return value


class CarbonLedger:
    def __init__(
        self,
        store: RecordStore,
        table: EmissionTable,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.table = table
        self.clock = clock

    def record_scan(self, user_id: str, category: str, quantity: int = 1) -> ScanResult:
        """Record one scan and add its CO2 to the user's running total.

        ``quantity`` defaults to a single item and must be an integer
        between 1 and MAX_QUANTITY.
        The entry is persisted before the total is touched; if the total
        update fails the entry stays and StoreFailure propagates.
        """
        _require_text(user_id, "userId")
        _require_text(category, "category")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidInput("quantity must be an integer")
        if quantity < 1:
            raise InvalidInput("quantity must be at least 1")
        if quantity > MAX_QUANTITY:
            raise InvalidInput(f"quantity must be at most {MAX_QUANTITY}")

        factor = self.table.lookup(category)
        if factor is None:
            raise UnknownCategory(category)

        total_weight = factor.average_weight * quantity
        co2_saved = total_weight * factor.recycle_factor

        entry = ScanEntry(
            user_id=user_id,
            category=normalize_category(category),
            quantity=quantity,
            total_weight=total_weight,
            co2_saved=co2_saved,
            timestamp=self.clock(),
        )
        self.store.insert_scan_entry(entry)
        account = self.store.upsert_user_account(user_id, add_delta=co2_saved)
        logger.debug(
            "Recorded scan user=%s category=%s quantity=%d co2=%.6f total=%.6f",
            user_id, entry.category, quantity, co2_saved, account.total_co2_saved,
        )

        return ScanResult(
            co2_saved=round(co2_saved, DISPLAY_DECIMALS),
            total_co2_saved=round(account.total_co2_saved, DISPLAY_DECIMALS),
            entry=_rounded_entry(entry),
        )

    def get_summary(self, user_id: str) -> Summary:
        # a blank id can never own an account
        if not isinstance(user_id, str) or not user_id.strip():
            raise UserNotFound(str(user_id))
        account = self.store.find_user_account(user_id)
        if account is None:
            raise UserNotFound(user_id)

        since = self.clock() - WEEKLY_WINDOW
        weekly = sum(e.co2_saved for e in self.store.query_scan_entries(user_id, min_timestamp=since))

        # dicts keep insertion order: categories appear in first-seen order
        by_category: Dict[str, float] = {}
        for e in self.store.query_scan_entries(user_id):
            by_category[e.category] = by_category.get(e.category, 0.0) + e.co2_saved

        recent = self.store.query_recent_scan_entries(user_id, RECENT_ENTRIES_LIMIT)

        return Summary(
            total_co2_saved=round(account.total_co2_saved, DISPLAY_DECIMALS),
            weekly_co2_saved=round(weekly, DISPLAY_DECIMALS),
            category_breakdown=[
                CategoryTotal(category=c, co2_saved=round(v, DISPLAY_DECIMALS))
                for c, v in by_category.items()
            ],
            recent_entries=[_rounded_entry(e) for e in recent],
        )
