"""Scoresheet domain services.

Value model, derived figures, roster resolution, display sorting, the sheet
lifecycle and the penalty trigger.
"""

from .derivation import ChanceRank, PlayerSummary, summarize, summarize_sheet
from .lifecycle import SheetManager, SheetView
from .penalties import PenaltyLedger, PenaltyTrigger
from .roster import GuestPlayer, Member, make_guest, resolve_billing_target, resolve_players
from .sheet import Period, ScoreSheet, SessionContext
from .sorting import SortMode, sort_players
from .values import Field, KniffelScores, ScoreValue

__all__ = [
    'ChanceRank',
    'Field',
    'GuestPlayer',
    'KniffelScores',
    'Member',
    'PenaltyLedger',
    'PenaltyTrigger',
    'Period',
    'PlayerSummary',
    'ScoreSheet',
    'ScoreValue',
    'SessionContext',
    'SheetManager',
    'SheetView',
    'SortMode',
    'make_guest',
    'resolve_billing_target',
    'resolve_players',
    'sort_players',
    'summarize',
    'summarize_sheet',
]
