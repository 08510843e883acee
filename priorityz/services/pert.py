# Rev 0.7.0

"""PERT three-point estimation (Rev 0.7.0)
expected = (o + 4m + p) / 6, std_dev = (p - o) / 6
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import Tuple

from ..errors import InvalidEstimateError
from ..models.entities import PertEstimate


@dataclass(frozen=True)
class PertResult:
    optimistic: float
    most_likely: float
    pessimistic: float
    expected: float
    std_dev: float

    @property
    def variance(self) -> float:
        return self.std_dev ** 2

    def confidence_interval(self, z: float = 1.0) -> Tuple[float, float]:
        """expected ± z·σ (z=1 ≈ 68%, z=2 ≈ 95%)."""
        return (self.expected - z * self.std_dev, self.expected + z * self.std_dev)


def _check(optimistic, most_likely, pessimistic) -> None:
    for name, value in (("optimistic", optimistic), ("most_likely", most_likely), ("pessimistic", pessimistic)):
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise InvalidEstimateError(f"{name} must be a finite number, got {value!r}")
    if not 0 < optimistic <= most_likely <= pessimistic:
        raise InvalidEstimateError(
            "estimate must satisfy 0 < optimistic <= most_likely <= pessimistic "
            f"(got {optimistic}, {most_likely}, {pessimistic})"
        )


def estimate(optimistic: float, most_likely: float, pessimistic: float) -> PertResult:
    _check(optimistic, most_likely, pessimistic)
    return PertResult(
        optimistic=optimistic,
        most_likely=most_likely,
        pessimistic=pessimistic,
        expected=(optimistic + 4 * most_likely + pessimistic) / 6,
        std_dev=(pessimistic - optimistic) / 6,
    )


def expected_duration(est: PertEstimate | None) -> float:
    if est is None:
        return 0.0
    return estimate(est.optimistic, est.most_likely, est.pessimistic).expected
