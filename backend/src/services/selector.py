from __future__ import annotations

import asyncio
import random
from typing import AsyncIterator, Iterator, List, Optional, Sequence, TypeVar

from errors import EmptyCandidateSet
from models import Animating, Candidate, SelectionState, Settled


T = TypeVar("T")

DEFAULT_TICKS = 30
DEFAULT_INTERVAL = 0.1  # seconds


def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a uniformly random permutation of ``items`` as a new list."""
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class Selector:
    """Computes the spin sequence for a candidate list.

    Each tick is an independent uniform draw with replacement. The final pick
    comes from a separate Fisher-Yates permutation, so it need not equal the
    last tick. The selector holds no selection state of its own.
    """

    def __init__(
        self,
        ticks: int = DEFAULT_TICKS,
        interval: float = DEFAULT_INTERVAL,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.ticks = max(0, ticks)
        self.interval = max(0.0, interval)
        self.rng = rng or random.Random()

    def draw(self, candidates: Sequence[Candidate]) -> Candidate:
        return candidates[self.rng.randrange(len(candidates))]

    def final_pick(self, candidates: Sequence[Candidate]) -> Candidate:
        if not candidates:
            raise EmptyCandidateSet()
        return fisher_yates(candidates, self.rng)[0]

    def spin(self, candidates: Sequence[Candidate]) -> Iterator[SelectionState]:
        # checked here rather than inside the generator so an empty list fails before any tick
        if not candidates:
            raise EmptyCandidateSet()
        return self._states(list(candidates))

    def _states(self, candidates: List[Candidate]) -> Iterator[SelectionState]:
        for tick in range(1, self.ticks + 1):
            yield Animating(tick_count=tick, current_pick=self.draw(candidates))
        yield Settled(final_pick=self.final_pick(candidates))

    async def animate(self, candidates: Sequence[Candidate]) -> AsyncIterator[SelectionState]:
        """Timed version of :meth:`spin`: one tick per interval, then the final pick."""
        for state in self.spin(candidates):
            # the final pick lands on the same beat as the last tick
            if isinstance(state, Animating):
                await asyncio.sleep(self.interval)
            yield state
