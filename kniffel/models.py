from kniffel import db
from datetime import datetime, timezone
import json


def _utcnow():
    return datetime.now(timezone.utc)


class ClubMember(db.Model):
    """Roster entry. The scoresheet services only ever read these."""
    __tablename__ = 'member'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role,
        }


class KniffelSheet(db.Model):
    __tablename__ = 'kniffel_sheet'
    id = db.Column(db.String(32), primary_key=True)
    year = db.Column(db.Integer, nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    player_order = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of player ids
    guests = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded guest snapshots
    cells = db.relationship(
        'ScoreCell',
        back_populates='sheet',
        cascade='all, delete-orphan',
        lazy='selectin',
    )

    def order_list(self):
        return json.loads(self.player_order or '[]')

    def guest_list(self):
        return json.loads(self.guests or '[]')

    def to_dict(self):
        order = self.order_list()
        scores = {player_id: {} for player_id in order}
        for cell in self.cells:
            scores.setdefault(cell.player_id, {})[cell.field] = cell.to_json()
        return {
            'id': self.id,
            'year': self.year,
            'month': self.month,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'player_order': order,
            'guests': self.guest_list(),
            'scores': scores,
        }


class ScoreCell(db.Model):
    """One (player, field) cell. Cells are written one at a time."""
    __tablename__ = 'score_cell'
    __table_args__ = (
        db.UniqueConstraint('sheet_id', 'player_id', 'field', name='uq_score_cell'),
        db.CheckConstraint('NOT (stroke AND value IS NOT NULL)', name='ck_score_cell_stroke_xor_value'),
    )
    id = db.Column(db.Integer, primary_key=True)
    sheet_id = db.Column(db.String(32), db.ForeignKey('kniffel_sheet.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False)
    field = db.Column(db.String(32), nullable=False)
    value = db.Column(db.Integer, nullable=True)
    stroke = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    sheet = db.relationship('KniffelSheet', back_populates='cells')

    def to_json(self):
        if self.stroke:
            return 'stroke'
        return self.value


class Penalty(db.Model):
    __tablename__ = 'penalty'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False, default=1)
    reason = db.Column(db.String(256), nullable=False)
    date = db.Column(db.Date, nullable=False)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    guest_name = db.Column(db.String(128), nullable=True)
    is_guest = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'amount': self.amount,
            'reason': self.reason,
            'date': self.date.isoformat() if self.date else None,
            'is_paid': self.is_paid,
            'guest_name': self.guest_name,
            'is_guest': self.is_guest,
        }
