from collections import deque
from typing import Deque

import numpy as np


class StabilityAnalyzer:
    """
    Two-stage sliding window over a joint's horizontal offset.

    The first window yields the outlier-trimmed range of recent offsets for
    each frame, and the second averages those ranges into a steady
    instability score used to detect swinging.
    """

    def __init__(self, window_size: int = 30, range_window_size: int = 20, trim_fraction: float = 0.1):
        self.trim_fraction = trim_fraction
        self._positions: Deque[float] = deque(maxlen=window_size)
        self._ranges: Deque[float] = deque(maxlen=range_window_size)

    def update(self, offset: float) -> float:
        self._positions.append(offset)
        if len(self._positions) < 3:
            return 0.0

        filtered = sorted(self._positions)
        if len(filtered) > 10:
            cutoff = int(len(filtered) * self.trim_fraction)
            filtered = filtered[cutoff:len(filtered) - cutoff]

        self._ranges.append(max(filtered) - min(filtered))
        return float(np.mean(self._ranges))

    def reset(self) -> None:
        self._positions.clear()
        self._ranges.clear()

    def __len__(self) -> int:
        return len(self._positions)
