"""Derived figures for a scoresheet.

Everything here is recomputed from raw cells on every read and never
persisted: section sums, the upper-section bonus, the grand total, and the
two highlight flags that depend on all players of a sheet.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from .values import Field, KniffelScores, LOWER_FIELDS, UPPER_FIELDS

BONUS_THRESHOLD = 63
BONUS_POINTS = 35


class ChanceRank(str, Enum):
    HIGHEST = 'highest'
    LOWEST = 'lowest'


def upper_sum(scores: KniffelScores) -> int:
    return sum(scores.get(f).contribution for f in UPPER_FIELDS)


def bonus(scores: KniffelScores) -> int:
    return BONUS_POINTS if upper_sum(scores) >= BONUS_THRESHOLD else 0


def lower_sum(scores: KniffelScores) -> int:
    return sum(scores.get(f).contribution for f in LOWER_FIELDS)


def total(scores: KniffelScores) -> int:
    return upper_sum(scores) + bonus(scores) + lower_sum(scores)


def top_combination_highlight(scores: KniffelScores) -> bool:
    value = scores.get(Field.KNIFFEL)
    return value.is_numeric and value.points > 0


def chance_ranks(scores_by_player: Mapping[str, KniffelScores]) -> Dict[str, Optional[ChanceRank]]:
    """Rank every player's chance cell against the others.

    Only numeric chance values take part. With fewer than two of them nobody
    is flagged. The max check runs first, so when all filled values are equal
    every filled player is flagged highest.
    """
    filled = {}
    for player_id, scores in scores_by_player.items():
        value = scores.get(Field.CHANCE)
        if value.is_numeric:
            filled[player_id] = value.points

    ranks: Dict[str, Optional[ChanceRank]] = {player_id: None for player_id in scores_by_player}
    if len(filled) < 2:
        return ranks

    highest = max(filled.values())
    lowest = min(filled.values())
    for player_id, points in filled.items():
        if points == highest:
            ranks[player_id] = ChanceRank.HIGHEST
        elif points == lowest:
            ranks[player_id] = ChanceRank.LOWEST
    return ranks


@dataclass(frozen=True)
class PlayerSummary:
    upper_sum: int
    bonus: int
    lower_sum: int
    total: int
    top_combination: bool
    chance_rank: Optional[ChanceRank] = None

    def to_dict(self):
        return {
            'upper_sum': self.upper_sum,
            'bonus': self.bonus,
            'lower_sum': self.lower_sum,
            'total': self.total,
            'top_combination': self.top_combination,
            'chance_rank': self.chance_rank.value if self.chance_rank else None,
        }


def summarize(scores: KniffelScores, chance_rank: Optional[ChanceRank] = None) -> PlayerSummary:
    upper = upper_sum(scores)
    bonus_points = BONUS_POINTS if upper >= BONUS_THRESHOLD else 0
    lower = lower_sum(scores)
    return PlayerSummary(
        upper_sum=upper,
        bonus=bonus_points,
        lower_sum=lower,
        total=upper + bonus_points + lower,
        top_combination=top_combination_highlight(scores),
        chance_rank=chance_rank,
    )


def summarize_sheet(sheet) -> Dict[str, PlayerSummary]:
    """Summaries for every player column on a sheet, keyed by player id."""
    ranks = chance_ranks(sheet.scores)
    return {
        player_id: summarize(scores, ranks.get(player_id))
        for player_id, scores in sheet.scores.items()
    }
