import itertools
import random
import time
from typing import Iterable, Optional, Tuple

from snitch.constants import (
    QUAFFLE_NEUTRAL,
    QUAFFLE_RED,
    RED_QUAFFLE_PROBABILITY,
    VISIBLE_QUAFFLES,
)
from snitch.models import Quaffle


_quaffle_ids = itertools.count(1)


def generate_quaffle_id() -> str:
    return f"q_{int(time.time() * 1000)}_{next(_quaffle_ids)}"


def generate_quaffle(rng: Optional[random.Random] = None) -> Quaffle:
    rng = rng or random
    kind = QUAFFLE_RED if rng.random() < RED_QUAFFLE_PROBABILITY else QUAFFLE_NEUTRAL
    return Quaffle(id=generate_quaffle_id(), type=kind)


def generate_quaffle_row(count: int = VISIBLE_QUAFFLES, rng: Optional[random.Random] = None) -> Tuple[Quaffle, ...]:
    return tuple(generate_quaffle(rng) for _ in range(count))


def refill_quaffle_row(
    row: Iterable[Quaffle],
    target_count: int = VISIBLE_QUAFFLES,
    rng: Optional[random.Random] = None,
) -> Tuple[Quaffle, ...]:
    """Append fresh quaffles until the row holds ``target_count``.

    Existing entries keep their order and a longer row is returned as is.
    """
    refilled = list(row)
    while len(refilled) < target_count:
        refilled.append(generate_quaffle(rng))
    return tuple(refilled)
