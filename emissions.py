"""Static emission-factor table, loaded once at startup."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from schemas import EmissionFactor

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PATH = Path(__file__).with_name("carbon_table.json")


def normalize_category(category: str) -> str:
    return category.strip().lower()


class EmissionTable:
    """Read-only mapping of lowercase category name -> EmissionFactor."""

    def __init__(self, factors: Iterable[EmissionFactor]) -> None:
        self._factors: Dict[str, EmissionFactor] = {}
        for factor in factors:
            key = normalize_category(factor.category)
            self._factors[key] = factor.model_copy(update={"category": key})

    @classmethod
    def from_mapping(cls, raw: dict) -> "EmissionTable":
        """Build a table from ``{category: {"avg_weight": .., "ef_recycle": ..}}``.

        Raises:
            ValueError: if an entry is missing a coefficient or has an invalid one.
        """
        factors: List[EmissionFactor] = []
        for category, data in raw.items():
            if not isinstance(data, dict):
                raise ValueError(f"Emission table entry for {category!r} must be an object")
            try:
                factors.append(
                    EmissionFactor(
                        category=category,
                        average_weight=data["avg_weight"],
                        recycle_factor=data["ef_recycle"],
                    )
                )
            except KeyError as exc:
                raise ValueError(f"Emission table entry for {category!r} is missing {exc.args[0]!r}") from exc
            except ValidationError as exc:
                raise ValueError(f"Invalid emission table entry for {category!r}: {exc}") from exc
        return cls(factors)

    @classmethod
    def from_json(cls, path: str | Path) -> "EmissionTable":
        path = Path(path).expanduser()
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Emission table {path} must be a JSON object")
        table = cls.from_mapping(raw)
        logger.info("Loaded %d emission factors from %s", len(table), path)
        return table

    def lookup(self, category: str) -> Optional[EmissionFactor]:
        """Return the factor for ``category`` (any case), or None if unknown."""
        return self._factors.get(normalize_category(category))

    def categories(self) -> List[str]:
        return list(self._factors)

    def __len__(self) -> int:
        return len(self._factors)

    def __contains__(self, category: str) -> bool:
        return self.lookup(category) is not None


def load_default_table() -> EmissionTable:
    return EmissionTable.from_json(DEFAULT_TABLE_PATH)
