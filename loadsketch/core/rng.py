from __future__ import annotations

import random
from typing import Callable, Optional

Rng = Callable[[], float]

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MASK = 0x7FFFFFFF


def create_rng(seed: Optional[int] = None) -> Rng:
    """Return a generator of floats in [0, 1].

    With a seed this is a linear congruential generator, so the same seed
    always replays the same sequence. Without one, an unseeded
    ``random.Random`` instance is used.
    """
    if seed is None:
        return random.Random().random

    state = seed & _LCG_MASK

    def next_value() -> float:
        nonlocal state
        state = (state * _LCG_MULTIPLIER + _LCG_INCREMENT) & _LCG_MASK
        return state / _LCG_MASK

    return next_value
