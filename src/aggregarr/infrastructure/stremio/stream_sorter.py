"""Output ordering for the final stream list."""

from __future__ import annotations

import random

from aggregarr.domain.entities.stremio import OrderingPolicy, Stream


class StreamSorter:
    """Applies exactly one ordering policy per deployment.

    ``CACHED_FIRST``: stable sort by ``cached`` descending, so ties keep
    their discovery order. ``SHUFFLE``: uniform random permutation.
    """

    def __init__(
        self,
        policy: OrderingPolicy = OrderingPolicy.CACHED_FIRST,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy
        self._rng = rng or random.Random()

    def sort(self, streams: list[Stream]) -> list[Stream]:
        """Return a new list ordered by the configured policy."""
        if self.policy is OrderingPolicy.SHUFFLE:
            shuffled = list(streams)
            self._rng.shuffle(shuffled)
            return shuffled
        return sorted(streams, key=lambda s: s.cached, reverse=True)
