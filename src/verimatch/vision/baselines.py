"""Versioned checkpoint baselines.

Every approval appends a new record that points back to the record it
replaced, so a checkpoint's history is a chain of strictly decreasing
indices into an append-only log.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .comparison import ComparisonEngine, ComparisonResult
from .geometry import Rect

logger = logging.getLogger(__name__)

SYSTEM_APPROVER = "system"


@dataclass(frozen=True)
class BaselineKey:
    """Identifies one checkpoint in one environment."""

    checkpoint: str
    environment: str = "default"
    browser: str = "chromium"
    viewport: str = "1920x1080"

    def __str__(self) -> str:
        return f"{self.checkpoint}@{self.environment}/{self.browser}/{self.viewport}"


@dataclass(frozen=True)
class BaselineRecord:
    """One approved baseline version."""

    index: int
    key: BaselineKey
    image_hash: str  # sha256 hex of image_bytes
    image_bytes: bytes = field(repr=False)
    created_at: datetime
    approved_by: str
    reason: str | None = None
    previous_index: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation (without image bytes)."""
        return {
            "index": self.index,
            "checkpoint": self.key.checkpoint,
            "environment": self.key.environment,
            "browser": self.key.browser,
            "viewport": self.key.viewport,
            "image_hash": self.image_hash,
            "created_at": self.created_at.isoformat(),
            "approved_by": self.approved_by,
            "reason": self.reason,
            "previous_index": self.previous_index,
        }


class BaselineLog:
    """Append-only, thread-safe store of baseline versions."""

    def __init__(self) -> None:
        self._records: list[BaselineRecord] = []
        self._latest: dict[BaselineKey, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def append(
        self,
        key: BaselineKey,
        image_bytes: bytes,
        approved_by: str,
        reason: str | None = None,
    ) -> BaselineRecord:
        """Store a new baseline version for ``key``."""
        with self._lock:
            record = BaselineRecord(
                index=len(self._records),
                key=key,
                image_hash=hashlib.sha256(image_bytes).hexdigest(),
                image_bytes=image_bytes,
                created_at=datetime.now(timezone.utc),
                approved_by=approved_by,
                reason=reason,
                previous_index=self._latest.get(key),
            )
            self._records.append(record)
            self._latest[key] = record.index

        logger.info(f"Baseline {record.index} stored for {key} by {approved_by}")
        return record

    def latest(self, key: BaselineKey) -> BaselineRecord | None:
        with self._lock:
            index = self._latest.get(key)
            return self._records[index] if index is not None else None

    def get(self, index: int) -> BaselineRecord:
        """Return the record at ``index``.

        Raises:
            KeyError: If no record has that index
        """
        with self._lock:
            if not 0 <= index < len(self._records):
                raise KeyError(index)
            return self._records[index]

    def history(self, key: BaselineKey) -> list[BaselineRecord]:
        """All versions for ``key``, newest first."""
        chain = []
        record = self.latest(key)
        while record is not None:
            chain.append(record)
            record = self.get(record.previous_index) if record.previous_index is not None else None
        return chain


class CheckpointVerifier:
    """Compares checkpoint captures against their latest baseline.

    Example:
        verifier = CheckpointVerifier(BaselineLog(), ComparisonEngine())
        result = verifier.check(BaselineKey("checkout"), screenshot_png)
    """

    def __init__(self, log: BaselineLog, engine: ComparisonEngine | None = None) -> None:
        self.log = log
        self.engine = engine or ComparisonEngine()

    def check(
        self,
        key: BaselineKey,
        actual_bytes: bytes,
        tolerance: float | None = None,
        ignore_regions: Sequence[Rect] | None = None,
        region: Rect | None = None,
    ) -> ComparisonResult:
        """Compare ``actual_bytes`` with the latest baseline for ``key``.

        The first capture of a checkpoint becomes its baseline and passes.
        """
        baseline = self.log.latest(key)
        if baseline is None:
            self.log.append(key, actual_bytes, SYSTEM_APPROVER, "initial baseline")
            return self.engine.compare(
                actual_bytes,
                actual_bytes,
                tolerance=tolerance,
                ignore_regions=ignore_regions,
                region=region,
            )

        return self.engine.compare(
            baseline.image_bytes,
            actual_bytes,
            tolerance=tolerance,
            ignore_regions=ignore_regions,
            region=region,
        )

    def approve(
        self,
        key: BaselineKey,
        actual_bytes: bytes,
        approved_by: str,
        reason: str | None = None,
    ) -> BaselineRecord:
        """Accept ``actual_bytes`` as the new baseline for ``key``."""
        return self.log.append(key, actual_bytes, approved_by, reason)
