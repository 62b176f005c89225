"""Duration-driven choice of the upstream downsampling factor."""
from __future__ import annotations

from dataclasses import dataclass

from holterview.core.errors import InvalidParametersError

__all__ = ["FACTOR_STEPS", "FactorPolicy", "factor_for_duration", "resolve_factor"]

# (exclusive lower bound in seconds, factor), longest first. A duration exactly on a
# bound belongs to the lower bracket: intervals are (lower, upper].
FACTOR_STEPS: tuple[tuple[float, int], ...] = (
    (12 * 3600.0, 15),
    (6 * 3600.0, 10),
    (3 * 3600.0, 8),
    (1 * 3600.0, 5),
    (30 * 60.0, 3),
    (10 * 60.0, 2),
)


@dataclass(frozen=True)
class FactorPolicy:
    """Clamp applied to every computed or requested factor.

    ``ceiling=15`` lets the step table scale freely; ``ceiling=3`` mirrors services
    that clamp decimation server-side.
    """

    ceiling: int = 15
    steps: tuple[tuple[float, int], ...] = FACTOR_STEPS

    def clamp(self, factor: int) -> int:
        return max(1, min(int(factor), max(1, int(self.ceiling))))


def factor_for_duration(duration_s: float, policy: FactorPolicy | None = None) -> int:
    policy = policy or FactorPolicy()
    for lower, factor in policy.steps:
        if duration_s > lower:
            return policy.clamp(factor)
    return policy.clamp(1)


def resolve_factor(requested: int | None, duration_s: float, policy: FactorPolicy | None = None) -> int:
    policy = policy or FactorPolicy()
    if requested is None:
        return factor_for_duration(duration_s, policy)
    if isinstance(requested, bool) or int(requested) != requested or int(requested) < 1:
        raise InvalidParametersError("Downsampling factor must be a positive integer.")
    return policy.clamp(int(requested))
