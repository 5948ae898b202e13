"""Sheet lifecycle: create, edit cells, reorder seats, delete.

The manager keeps a local copy of the sheets it touched most recently
(``cache_size`` of them; older ones are reloaded from the store). Edits are
applied to that copy first and then handed to the store through the write
dispatcher. A failed write is logged and raised as ``PersistenceError``, but
the local value stays; the next snapshot from the change feed settles the
cell, last write wins.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from kniffel.errors import PersistenceError, ResolutionError, SheetNotFoundError, ValidationError
from .derivation import PlayerSummary, summarize_sheet
from .dispatch import PendingWrite, WriteDispatcher
from .feed import SheetDiff, SheetSnapshot, Subscription, diff_sheets
from .roster import GuestPlayer, Player, resolve_player, resolve_players, validate_guest
from .sheet import Period, ScoreSheet, SessionContext
from .sorting import SortMode, sort_players
from .values import (
    EMPTY,
    Field,
    ScoreValue,
    dice_value,
    toggled_fixed,
    toggled_stroke,
    validate_value,
)

log = logging.getLogger(__name__)

MIN_PLAYERS = 2
CACHE_SIZE = 256


@dataclass(frozen=True)
class SheetView:
    """A sheet as one client renders it: resolved players in display order plus summaries."""
    sheet: ScoreSheet
    sort_mode: SortMode
    players: List[Player]
    summaries: Dict[str, PlayerSummary]

    def to_dict(self):
        players = []
        for player in self.players:
            entry = player.to_dict()
            summary = self.summaries.get(player.id)
            entry['summary'] = summary.to_dict() if summary else None
            players.append(entry)
        return {
            'sheet': self.sheet.to_dict(),
            'sort': self.sort_mode.value,
            'columns': [p.id for p in self.players],
            'players': players,
        }


class SheetManager:
    def __init__(self, store, dispatcher: Optional[WriteDispatcher] = None,
                 min_players: int = MIN_PLAYERS, create_deadline: Optional[float] = None,
                 cache_size: int = CACHE_SIZE):
        self.store = store
        self.dispatcher = dispatcher or WriteDispatcher()
        self.min_players = min_players
        self.create_deadline = create_deadline
        self.cache_size = cache_size
        self._sheets: 'OrderedDict[str, ScoreSheet]' = OrderedDict()
        self._lock = threading.RLock()

    # ---- reads ----

    def get_sheet(self, sheet_id: str) -> ScoreSheet:
        with self._lock:
            sheet = self._cached(sheet_id)
        if sheet is not None:
            return sheet
        sheet = self.store.load_sheet(sheet_id)
        with self._lock:
            # a snapshot may have landed while we were loading
            return self._cached(sheet_id) or self._remember(sheet_id, sheet)

    def refresh(self, sheet_id: str) -> SheetDiff:
        """Reload a sheet from the store and merge it like a remote snapshot."""
        try:
            sheet = self.store.load_sheet(sheet_id)
        except SheetNotFoundError:
            with self._lock:
                self._sheets.pop(sheet_id, None)
            raise
        return self.apply_snapshot(SheetSnapshot(sheet_id, sheet.to_dict()))

    def list_sheets(self, period: Period) -> List[ScoreSheet]:
        return self.store.list_sheets(period)

    def resolve_players(self, ctx: SessionContext, sheet_id: str) -> List[Player]:
        sheet = self.get_sheet(sheet_id)
        return resolve_players(sheet.player_order, ctx.members, sheet.guests)

    def find_player(self, ctx: SessionContext, sheet_id: str, player_id: str) -> Player:
        sheet = self.get_sheet(sheet_id)
        player = resolve_player(player_id, ctx.members, sheet.guests) if player_id in sheet.scores else None
        if player is None:
            raise ResolutionError(f'Player {player_id} is not on sheet {sheet_id}')
        return player

    def view(self, ctx: SessionContext, sheet_id: str, sort_mode=SortMode.MANUAL) -> SheetView:
        mode = SortMode.parse(sort_mode)
        sheet = self.get_sheet(sheet_id)
        players = resolve_players(sheet.player_order, ctx.members, sheet.guests)
        return SheetView(
            sheet=sheet,
            sort_mode=mode,
            players=sort_players(players, mode, sheet.scores),
            summaries=summarize_sheet(sheet),
        )

    # ---- writes ----

    def create_sheet(self, ctx: SessionContext, period: Period, player_ids: Sequence[str],
                     guests: Sequence[GuestPlayer] = ()) -> ScoreSheet:
        player_ids = [str(pid) for pid in player_ids]
        if len(player_ids) < self.min_players:
            raise ValidationError(f'At least {self.min_players} players are required')
        if len(set(player_ids)) != len(player_ids):
            raise ValidationError('A player can only be seated once')

        member_ids = {m.id for m in ctx.members}
        selected = set(player_ids)
        kept_guests = []
        for guest in guests:
            validate_guest(guest, ctx.members)
            if guest.id in member_ids:
                raise ValidationError(f'Guest id {guest.id} collides with a member')
            # guests that were added and then deselected are not frozen into the sheet
            if guest.id in selected:
                kept_guests.append(guest)
        guest_ids = [g.id for g in kept_guests]
        if len(set(guest_ids)) != len(guest_ids):
            raise ValidationError('Duplicate guest ids')
        unknown = [pid for pid in player_ids if pid not in member_ids and pid not in guest_ids]
        if unknown:
            raise ValidationError(f'Unknown players: {", ".join(unknown)}')

        sheet = ScoreSheet.new(period, player_ids, kept_guests)
        with self._lock:
            self._remember(sheet.id, sheet)
        log.info(
            f"[create-sheet] sheet={sheet.id} period={period.year}-{period.month:02d} "
            f"players={len(player_ids)} guests={len(kept_guests)} actor={ctx.actor}"
        )
        pending = self.dispatcher.submit(f"create sheet={sheet.id}", self.store.create_sheet, sheet, sheet_id=sheet.id)
        if not pending.wait(self.create_deadline):
            log.warning(f"[create-pending] sheet={sheet.id} not confirmed within {self.create_deadline}s")
            return sheet
        if pending.error is not None:
            # nothing exists remotely to reconcile against
            with self._lock:
                self._sheets.pop(sheet.id, None)
            raise self._as_persistence_error(pending, sheet.id)
        return sheet

    def set_cell(self, ctx: SessionContext, sheet_id: str, player_id: str, field, value) -> ScoreValue:
        f = Field.parse(field)
        if not isinstance(value, ScoreValue):
            value = ScoreValue.from_json(value)
        validate_value(f, value)
        self._require_player(sheet_id, player_id)
        return self._write_cell(ctx, sheet_id, player_id, f, value)

    def clear_cell(self, ctx: SessionContext, sheet_id: str, player_id: str, field) -> ScoreValue:
        return self.set_cell(ctx, sheet_id, player_id, field, EMPTY)

    def enter_dice_count(self, ctx: SessionContext, sheet_id: str, player_id: str, field, dice_count) -> ScoreValue:
        f = Field.parse(field)
        value = dice_value(f, dice_count)
        self._require_player(sheet_id, player_id)
        return self._write_cell(ctx, sheet_id, player_id, f, value)

    def toggle_fixed(self, ctx: SessionContext, sheet_id: str, player_id: str, field) -> ScoreValue:
        f = Field.parse(field)
        sheet = self._require_player(sheet_id, player_id)
        value = toggled_fixed(f, sheet.cell(player_id, f))
        return self._write_cell(ctx, sheet_id, player_id, f, value)

    def toggle_stroke(self, ctx: SessionContext, sheet_id: str, player_id: str, field) -> ScoreValue:
        f = Field.parse(field)
        sheet = self._require_player(sheet_id, player_id)
        value = toggled_stroke(sheet.cell(player_id, f))
        return self._write_cell(ctx, sheet_id, player_id, f, value)

    def reorder_players(self, ctx: SessionContext, sheet_id: str, new_order: Sequence[str]) -> ScoreSheet:
        sheet = self.get_sheet(sheet_id)
        new_order = [str(pid) for pid in new_order]
        if len(new_order) != len(sheet.player_order) or sorted(new_order) != sorted(sheet.player_order):
            raise ValidationError('New order must be a permutation of the current players')
        with self._lock:
            current = self._cached(sheet_id) or sheet
            updated = current.with_order(new_order)
            self._remember(sheet_id, updated)
        log.info(f"[reorder] sheet={sheet_id} order={new_order} actor={ctx.actor}")
        pending = self.dispatcher.submit(
            f"reorder sheet={sheet_id}", self.store.replace_order, sheet_id, new_order, sheet_id=sheet_id,
        )
        self._settle(pending, sheet_id)
        return updated

    def delete_sheet(self, ctx: SessionContext, sheet_id: str) -> None:
        self.get_sheet(sheet_id)
        with self._lock:
            self._sheets.pop(sheet_id, None)
        log.info(f"[delete-sheet] sheet={sheet_id} actor={ctx.actor}")
        pending = self.dispatcher.submit(
            f"delete sheet={sheet_id}", self.store.delete_sheet, sheet_id, sheet_id=sheet_id,
        )
        self._settle(pending, sheet_id)

    # ---- change feed ----

    def apply_snapshot(self, snapshot: SheetSnapshot) -> SheetDiff:
        """Merge a full remote document into local state; remote wins."""
        if snapshot.deleted:
            with self._lock:
                old = self._sheets.pop(snapshot.sheet_id, None)
            return SheetDiff(players_removed=list(old.scores) if old else [])
        incoming = snapshot.sheet()
        with self._lock:
            old = self._sheets.get(snapshot.sheet_id)
            self._remember(snapshot.sheet_id, incoming)
        diff = diff_sheets(old, incoming)
        if not diff.empty:
            log.debug(f"[merge] sheet={snapshot.sheet_id} cells={len(diff.cells)} order_changed={diff.order_changed}")
        return diff

    def follow(self, subscription: Subscription, on_change=None) -> None:
        """Consume a subscription until it is closed."""
        for snapshot in subscription:
            diff = self.apply_snapshot(snapshot)
            if on_change is not None and not diff.empty:
                on_change(snapshot.sheet_id, diff)

    # ---- helpers ----

    def _cached(self, sheet_id: str) -> Optional[ScoreSheet]:
        # callers hold self._lock
        sheet = self._sheets.get(sheet_id)
        if sheet is not None:
            self._sheets.move_to_end(sheet_id)
        return sheet

    def _remember(self, sheet_id: str, sheet: ScoreSheet) -> ScoreSheet:
        self._sheets[sheet_id] = sheet
        self._sheets.move_to_end(sheet_id)
        while len(self._sheets) > self.cache_size:
            evicted, _ = self._sheets.popitem(last=False)
            log.debug(f"[cache-evict] sheet={evicted}")
        return sheet

    def _require_player(self, sheet_id: str, player_id: str) -> ScoreSheet:
        sheet = self.get_sheet(sheet_id)
        if player_id not in sheet.scores:
            raise ValidationError(f'Player {player_id} is not on sheet {sheet_id}')
        return sheet

    def _write_cell(self, ctx, sheet_id: str, player_id: str, f: Field, value: ScoreValue) -> ScoreValue:
        with self._lock:
            current = self._cached(sheet_id) or self.get_sheet(sheet_id)
            self._remember(sheet_id, current.with_cell(player_id, f, value))
        log.info(f"[set-cell] sheet={sheet_id} player={player_id} field={f.value} value={value.to_json()} actor={ctx.actor}")
        pending = self.dispatcher.submit(
            f"cell sheet={sheet_id} player={player_id} field={f.value}",
            self.store.update_cell, sheet_id, player_id, f, value, sheet_id=sheet_id,
        )
        self._settle(pending, sheet_id)
        return value

    def _settle(self, pending: PendingWrite, sheet_id: str) -> None:
        # background failures reach the dispatcher's on_error hook instead
        if self.dispatcher.inline and pending.error is not None:
            log.error(f"[write-failed] {pending.description}; local value kept")
            raise self._as_persistence_error(pending, sheet_id)

    @staticmethod
    def _as_persistence_error(pending: PendingWrite, sheet_id: str) -> PersistenceError:
        if isinstance(pending.error, PersistenceError):
            return pending.error
        return PersistenceError(f'{pending.description} failed: {pending.error}', sheet_id)
