"""The scoresheet document as the services see it."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence

from kniffel.errors import ValidationError
from .roster import GuestPlayer, Member
from .values import Field, KniffelScores, ScoreValue


class Period(NamedTuple):
    """Session period key of a sheet. ``month`` runs 1-12."""
    year: int
    month: int

    @classmethod
    def of(cls, year, month) -> 'Period':
        try:
            year, month = int(year), int(month)
        except (TypeError, ValueError):
            raise ValidationError('year and month must be integers') from None
        if not 1 <= month <= 12:
            raise ValidationError(f'month must be between 1 and 12, got {month}')
        return cls(year, month)


@dataclass(frozen=True)
class SessionContext:
    """Caller-supplied context for one manager call.

    ``members`` is the roster as the caller currently sees it; ``actor`` is
    whoever is making the change and only ends up in logs.
    """
    members: Sequence[Member] = ()
    actor: Optional[str] = None


def generate_sheet_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ScoreSheet:
    id: str
    year: int
    month: int
    player_order: List[str]
    guests: List[GuestPlayer] = field(default_factory=list)
    scores: Dict[str, KniffelScores] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def period(self) -> Period:
        return Period(self.year, self.month)

    @classmethod
    def new(cls, period: Period, player_order: Sequence[str], guests: Sequence[GuestPlayer]) -> 'ScoreSheet':
        return cls(
            id=generate_sheet_id(),
            year=period.year,
            month=period.month,
            player_order=list(player_order),
            guests=list(guests),
            scores={player_id: KniffelScores() for player_id in player_order},
            created_at=datetime.now(timezone.utc),
        )

    def cell(self, player_id: str, f: Field) -> ScoreValue:
        return self.scores[player_id].get(f)

    def with_cell(self, player_id: str, f: Field, value: ScoreValue) -> 'ScoreSheet':
        scores = dict(self.scores)
        scores[player_id] = scores[player_id].with_value(f, value)
        return replace(self, scores=scores)

    def with_order(self, player_order: Sequence[str]) -> 'ScoreSheet':
        return replace(self, player_order=list(player_order))

    def to_dict(self):
        return {
            'id': self.id,
            'year': self.year,
            'month': self.month,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'player_order': list(self.player_order),
            'guests': [g.to_dict() for g in self.guests],
            'scores': {player_id: scores.to_dict() for player_id, scores in self.scores.items()},
        }

    @classmethod
    def from_dict(cls, data) -> 'ScoreSheet':
        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            id=data['id'],
            year=int(data['year']),
            month=int(data['month']),
            player_order=list(data.get('player_order') or []),
            guests=[GuestPlayer.from_dict(g) for g in data.get('guests') or []],
            scores={pid: KniffelScores.from_dict(s) for pid, s in (data.get('scores') or {}).items()},
            created_at=created_at,
        )
