"""Display-only column orders. Nothing here touches the persisted order."""

from enum import Enum
from typing import List, Mapping, Sequence

from kniffel.errors import ValidationError
from .derivation import total
from .values import KniffelScores


class SortMode(str, Enum):
    MANUAL = 'manual'
    ALPHABETICAL = 'alphabetical'
    SCORE_HIGH = 'score_high'
    SCORE_LOW = 'score_low'

    @classmethod
    def parse(cls, raw) -> 'SortMode':
        if raw is None or raw == '':
            return cls.MANUAL
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f'Unknown sort mode: {raw!r}') from None


_SCORE_CYCLE = {
    SortMode.MANUAL: SortMode.SCORE_HIGH,
    SortMode.SCORE_HIGH: SortMode.SCORE_LOW,
    SortMode.SCORE_LOW: SortMode.MANUAL,
}


def next_score_sort(mode: SortMode) -> SortMode:
    """manual -> score_high -> score_low -> manual; alphabetical restarts at score_high."""
    return _SCORE_CYCLE.get(mode, SortMode.SCORE_HIGH)


def sort_players(players: Sequence, mode: SortMode, scores: Mapping[str, KniffelScores]) -> List:
    """Return a new list; ``players`` is expected in persisted manual order.

    Sorts are stable, so ties keep their manual order.
    """
    mode = SortMode.parse(mode)
    if mode is SortMode.MANUAL:
        return list(players)
    if mode is SortMode.ALPHABETICAL:
        return sorted(players, key=lambda p: p.name.casefold())

    def _total(player):
        column = scores.get(player.id)
        return total(column) if column is not None else 0

    return sorted(players, key=_total, reverse=mode is SortMode.SCORE_HIGH)
