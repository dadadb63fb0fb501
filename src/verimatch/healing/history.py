"""Healing history and the strategy-order bias derived from it.

Past successes for the same locator move the strategies that produced them
earlier in the order. History is advisory: a failing store never fails a
healing run.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .healing_types import HealingStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealingRecord:
    """One finished healing run."""

    original_locator: str
    healed_locator: str | None
    strategy: HealingStrategy | None
    confidence: float
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "original_locator": self.original_locator,
            "healed_locator": self.healed_locator,
            "strategy": self.strategy.value if self.strategy else None,
            "confidence": self.confidence,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealingRecord":
        """Create from dictionary."""
        strategy = data.get("strategy")
        return cls(
            original_locator=data["original_locator"],
            healed_locator=data.get("healed_locator"),
            strategy=HealingStrategy(strategy) if strategy else None,
            confidence=float(data.get("confidence", 0.0)),
            success=bool(data.get("success", False)),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


class HealingHistoryStore(ABC):
    """Append-only log of healing runs."""

    @abstractmethod
    def append(self, record: HealingRecord) -> None:
        pass

    @abstractmethod
    def recent(self, original_locator: str, limit: int = 50) -> list[HealingRecord]:
        """Most recent records for a locator, newest first."""
        pass


class InMemoryHistoryStore(HealingHistoryStore):
    """Process-local history, safe for concurrent runs."""

    def __init__(self) -> None:
        self._records: list[HealingRecord] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: HealingRecord) -> None:
        with self._lock:
            self._records.append(record)

    def recent(self, original_locator: str, limit: int = 50) -> list[HealingRecord]:
        with self._lock:
            matching = [r for r in self._records if r.original_locator == original_locator]
        return list(reversed(matching))[:limit]


class JsonLinesHistoryStore(HealingHistoryStore):
    """History persisted as one JSON object per line."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: HealingRecord) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record.to_dict()) + "\n")

    def recent(self, original_locator: str, limit: int = 50) -> list[HealingRecord]:
        if not self.path.exists():
            return []

        records = []
        with self._lock, self.path.open(encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = HealingRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError, AttributeError) as e:
                    logger.warning(f"Skipping malformed history line {line_number} in {self.path}: {e}")
                    continue
                if record.original_locator == original_locator:
                    records.append(record)

        return list(reversed(records))[:limit]


def strategy_bias(records: Sequence[HealingRecord]) -> dict[HealingStrategy, float]:
    """Share of successful runs each strategy produced."""
    wins = Counter(r.strategy for r in records if r.success and r.strategy is not None)
    total = sum(wins.values())
    if total == 0:
        return {}
    return {strategy: count / total for strategy, count in wins.items()}


def apply_bias(
    order: Sequence[HealingStrategy],
    shares: dict[HealingStrategy, float],
    max_shift: int,
) -> tuple[HealingStrategy, ...]:
    """Move strategies earlier by up to ``max_shift`` positions, scaled by share.

    A strategy never moves by more than ``max_shift`` positions and ties
    keep the policy order.
    """
    if not shares or max_shift <= 0:
        return tuple(order)

    def rank(item: tuple[int, HealingStrategy]) -> tuple[float, int]:
        index, strategy = item
        # the half step lets a full share pass exactly max_shift strategies
        return (index - (max_shift + 0.5) * shares.get(strategy, 0.0), index)

    return tuple(strategy for _, strategy in sorted(enumerate(order), key=rank))
