"""SQL-backed persistence for sheets, plus the read-only member roster.

Every write commits on its own and then publishes the sheet's current
document to the snapshot hub, so all open clients converge on whatever the
database accepted last.
"""

import json
import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from kniffel import db
from kniffel.errors import PersistenceError, SheetNotFoundError
from kniffel.models import ClubMember, KniffelSheet, ScoreCell
from .feed import SnapshotHub
from .roster import Member
from .sheet import Period, ScoreSheet
from .values import ALL_FIELDS, Field, ScoreValue

log = logging.getLogger(__name__)


class MemberRoster:
    def list_members(self) -> List[Member]:
        rows = ClubMember.query.order_by(ClubMember.name.asc()).all()
        return [Member(id=row.id, name=row.name) for row in rows]


class SqlSheetStore:
    def __init__(self, hub: Optional[SnapshotHub] = None):
        self.hub = hub

    # ---- reads ----

    def load_sheet(self, sheet_id: str) -> ScoreSheet:
        row = db.session.get(KniffelSheet, sheet_id)
        if row is None:
            raise SheetNotFoundError(sheet_id)
        return ScoreSheet.from_dict(row.to_dict())

    def list_sheets(self, period: Period) -> List[ScoreSheet]:
        rows = (
            KniffelSheet.query
            .filter_by(year=period.year, month=period.month)
            .order_by(KniffelSheet.created_at.desc())
            .all()
        )
        return [ScoreSheet.from_dict(row.to_dict()) for row in rows]

    # ---- writes ----

    def create_sheet(self, sheet: ScoreSheet) -> None:
        row = KniffelSheet(
            id=sheet.id,
            year=sheet.year,
            month=sheet.month,
            created_at=sheet.created_at,
            player_order=json.dumps(sheet.player_order),
            guests=json.dumps([g.to_dict() for g in sheet.guests]),
        )
        for player_id in sheet.player_order:
            scores = sheet.scores[player_id]
            for f in ALL_FIELDS:
                value = scores.get(f)
                row.cells.append(ScoreCell(player_id=player_id, field=f.value, value=value.points, stroke=value.stroke))
        self._commit(row, sheet.id, 'create')
        self._publish(sheet.id)

    def update_cell(self, sheet_id: str, player_id: str, f: Field, value: ScoreValue) -> None:
        try:
            cell = ScoreCell.query.filter_by(sheet_id=sheet_id, player_id=player_id, field=f.value).first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f'Could not read cell: {exc}', sheet_id) from exc
        if cell is None:
            raise PersistenceError(f'No cell {f.value} for player {player_id} on sheet {sheet_id}', sheet_id)
        cell.value = value.points
        cell.stroke = value.stroke
        self._commit(cell, sheet_id, 'update-cell')
        self._publish(sheet_id)

    def replace_order(self, sheet_id: str, player_order: Sequence[str]) -> None:
        row = self._get_row(sheet_id)
        row.player_order = json.dumps(list(player_order))
        self._commit(row, sheet_id, 'replace-order')
        self._publish(sheet_id)

    def delete_sheet(self, sheet_id: str) -> None:
        row = self._get_row(sheet_id)
        try:
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f'Could not delete sheet: {exc}', sheet_id) from exc
        log.info(f"[store-delete] sheet={sheet_id}")
        if self.hub is not None:
            self.hub.publish(sheet_id, None)

    # ---- helpers ----

    def _get_row(self, sheet_id: str) -> KniffelSheet:
        try:
            row = db.session.get(KniffelSheet, sheet_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f'Could not read sheet: {exc}', sheet_id) from exc
        if row is None:
            raise PersistenceError(f'Sheet {sheet_id} no longer exists', sheet_id)
        return row

    def _commit(self, obj, sheet_id: str, action: str) -> None:
        try:
            db.session.add(obj)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f'{action} failed: {exc}', sheet_id) from exc
        log.debug(f"[store-{action}] sheet={sheet_id}")

    def _publish(self, sheet_id: str) -> None:
        if self.hub is None:
            return
        row = db.session.get(KniffelSheet, sheet_id)
        if row is None:
            return
        self.hub.publish(sheet_id, row.to_dict())
