"""n-threshold gating helpers for presentation code."""

import logging
from typing import Optional

from disclosure.config import PrivacyConfig
from disclosure.cells import validate_count


logger = logging.getLogger(__name__)


class GatingThreshold:
    """
    One-dimensional n >= k check.

    Reads k from the same PrivacyConfig as the suppression engine.
    """

    def __init__(self, config: Optional[PrivacyConfig] = None):
        self.config = config or PrivacyConfig()

    @property
    def threshold(self) -> int:
        return self.config.min_cell_size

    def meets(self, n: int) -> bool:
        return validate_count(n) >= self.threshold

    def remaining(self, n: int) -> int:
        return max(0, self.threshold - validate_count(n))

    def message(self, n: int) -> str:
        n = validate_count(n)
        k = self.threshold

        if n == 0:
            return (f"There are no submissions yet. We need at least {k} "
                    f"to display content while protecting privacy.")

        remaining = k - n
        if remaining > 0:
            plural = "" if n == 1 else "s"
            return (f"{n} submission{plural} so far. {remaining} more needed "
                    f"to meet the n≥{k} privacy threshold.")

        return f"{n} submissions. Privacy threshold met."


_default_gate = GatingThreshold()


def meets_threshold(n: int) -> bool:
    return _default_gate.meets(n)


def gating_message(n: int) -> str:
    return _default_gate.message(n)
