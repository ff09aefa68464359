"""Tests for the standard-deviation activity gate."""

from __future__ import annotations

import statistics

import pytest

from src.stepcounter.activity_gate import ActivityGate
from src.stepcounter.base import Batch


class TestActivityGate:
    def test_constant_batch_is_not_significant(self, resting_batch: Batch) -> None:
        gate = ActivityGate(threshold=0.5)
        assert gate.deviation(resting_batch) == 0.0
        assert gate.classify(resting_batch) is False

    def test_alternating_batch_is_significant(self, walking_batch: Batch) -> None:
        gate = ActivityGate(threshold=0.5)
        assert gate.classify(walking_batch) is True

    def test_uses_bessel_corrected_deviation_by_default(self) -> None:
        batch = Batch.from_samples([1.0, 2.0, 3.0, 4.0])
        gate = ActivityGate()
        assert gate.formula == "sample"
        assert gate.deviation(batch) == pytest.approx(statistics.stdev([1, 2, 3, 4]))
        assert gate.deviation(batch) != pytest.approx(statistics.pstdev([1, 2, 3, 4]))

    def test_threshold_is_strict(self) -> None:
        batch = Batch.from_samples([0.0, 1.0])  # stdev = 0.7071...
        sd = ActivityGate().deviation(batch)
        assert ActivityGate(threshold=sd).classify(batch) is False
        assert ActivityGate(threshold=sd - 1e-9).classify(batch) is True

    def test_single_sample_has_zero_deviation(self) -> None:
        assert ActivityGate().deviation(Batch.from_samples([3.0])) == 0.0

    def test_classification_is_deterministic(self, walking_batch: Batch) -> None:
        gate = ActivityGate()
        assert {gate.classify(walking_batch) for _ in range(5)} == {True}

    def test_small_noise_below_default_threshold(self) -> None:
        samples = [9.81 + (0.05 if i % 2 else -0.05) for i in range(64)]
        assert ActivityGate().classify(Batch.from_samples(samples)) is False

    def test_negative_threshold_rejected(self) -> None:
        with pytest.raises(ValueError):
            ActivityGate(threshold=-0.1)


class TestDeviationFormula:
    def test_population_formula(self) -> None:
        batch = Batch.from_samples([1.0, 2.0, 3.0, 4.0])
        gate = ActivityGate(deviation="population")
        assert gate.deviation(batch) == pytest.approx(statistics.pstdev([1, 2, 3, 4]))

    def test_formula_changes_borderline_classification(self) -> None:
        batch = Batch.from_samples([0.0, 1.0])  # stdev 0.707, pstdev 0.5
        assert ActivityGate(threshold=0.6, deviation="sample").classify(batch) is True
        assert ActivityGate(threshold=0.6, deviation="population").classify(batch) is False

    def test_unknown_formula_rejected(self) -> None:
        with pytest.raises(ValueError, match="range"):
            ActivityGate(deviation="range")
