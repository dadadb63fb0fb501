"""Tests for healing history stores and strategy-order bias."""

import json

import pytest

from verimatch.healing import (
    DEFAULT_STRATEGY_ORDER,
    HealingRecord,
    HealingStrategy,
    InMemoryHistoryStore,
    JsonLinesHistoryStore,
    strategy_bias,
)
from verimatch.healing.history import apply_bias


def record(strategy, success=True, locator="#submit"):
    return HealingRecord(
        original_locator=locator,
        healed_locator="#new" if success else None,
        strategy=strategy,
        confidence=0.9 if success else 0.0,
        success=success,
    )


class TestInMemoryHistoryStore:
    """Process-local history."""

    def test_recent_is_newest_first_and_filtered(self):
        store = InMemoryHistoryStore()
        store.append(record(HealingStrategy.TEXT_MATCH))
        store.append(record(HealingStrategy.VISUAL_MATCH, locator="#other"))
        store.append(record(HealingStrategy.ARIA_MATCH))

        recent = store.recent("#submit")

        assert [r.strategy for r in recent] == [HealingStrategy.ARIA_MATCH, HealingStrategy.TEXT_MATCH]
        assert len(store) == 3

    def test_limit(self):
        store = InMemoryHistoryStore()
        for _ in range(5):
            store.append(record(HealingStrategy.TEXT_MATCH))

        assert len(store.recent("#submit", limit=2)) == 2


class TestJsonLinesHistoryStore:
    """History persisted to disk."""

    def test_round_trip(self, tmp_path):
        store = JsonLinesHistoryStore(tmp_path / "history" / "healing.jsonl")
        store.append(record(HealingStrategy.STABLE_ATTRIBUTES))
        store.append(record(None, success=False))

        recent = store.recent("#submit")

        assert [r.success for r in recent] == [False, True]
        assert recent[1].strategy == HealingStrategy.STABLE_ATTRIBUTES
        assert recent[1].healed_locator == "#new"

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonLinesHistoryStore(tmp_path / "none.jsonl").recent("#submit") == []

    def test_malformed_lines_are_skipped(self, tmp_path):
        path = tmp_path / "healing.jsonl"
        good = json.dumps(record(HealingStrategy.TEXT_MATCH).to_dict())
        path.write_text(f"not json\n{good}\n{{\"original_locator\": \"#submit\"}}\n\n", encoding="utf-8")

        recent = JsonLinesHistoryStore(path).recent("#submit")

        assert len(recent) == 1

    def test_lines_of_the_wrong_shape_are_skipped(self, tmp_path):
        path = tmp_path / "healing.jsonl"
        good = record(HealingStrategy.TEXT_MATCH).to_dict()
        bad_timestamp = {**good, "timestamp": 1700000000}
        lines = ["[1]", "\"text\"", json.dumps(bad_timestamp), json.dumps(good)]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        recent = JsonLinesHistoryStore(path).recent("#submit")

        assert len(recent) == 1
        assert recent[0].strategy == HealingStrategy.TEXT_MATCH


class TestStrategyBias:
    """Success shares and order bias."""

    def test_shares_count_successes_only(self):
        records = [
            record(HealingStrategy.VISUAL_MATCH),
            record(HealingStrategy.VISUAL_MATCH),
            record(HealingStrategy.TEXT_MATCH),
            record(HealingStrategy.ARIA_MATCH, success=False),
        ]

        shares = strategy_bias(records)

        assert shares[HealingStrategy.VISUAL_MATCH] == pytest.approx(2 / 3)
        assert shares[HealingStrategy.TEXT_MATCH] == pytest.approx(1 / 3)
        assert HealingStrategy.ARIA_MATCH not in shares

    def test_no_successes(self):
        assert strategy_bias([record(None, success=False)]) == {}

    def test_full_share_moves_up_by_max_shift(self):
        order = apply_bias(DEFAULT_STRATEGY_ORDER, {HealingStrategy.VISUAL_MATCH: 1.0}, max_shift=2)

        assert order[:4] == (
            HealingStrategy.TEXT_MATCH,
            HealingStrategy.VISUAL_MATCH,
            HealingStrategy.ARIA_MATCH,
            HealingStrategy.STABLE_ATTRIBUTES,
        )

    def test_generative_never_jumps_to_front(self):
        order = apply_bias(DEFAULT_STRATEGY_ORDER, {HealingStrategy.GENERATIVE: 1.0}, max_shift=2)

        assert order.index(HealingStrategy.GENERATIVE) == 3

    def test_zero_shift_keeps_order(self):
        shares = {HealingStrategy.GENERATIVE: 1.0}

        assert apply_bias(DEFAULT_STRATEGY_ORDER, shares, max_shift=0) == DEFAULT_STRATEGY_ORDER

    def test_no_shares_keeps_order(self):
        assert apply_bias(DEFAULT_STRATEGY_ORDER, {}, max_shift=2) == DEFAULT_STRATEGY_ORDER
