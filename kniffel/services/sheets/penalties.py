"""Penalty trigger: fire-and-forget fines raised from gameplay.

A penalty is billed to the player's billing target (a member pays for
themselves, a guest's host pays for the guest). Billing failures come back
as warnings on the outcome and never touch the scoresheet.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from kniffel import db
from kniffel.errors import BillingError, KniffelError, ValidationError
from kniffel.models import Penalty
from .dispatch import PendingWrite, WriteDispatcher
from .roster import GuestPlayer, Player, resolve_billing_target

log = logging.getLogger(__name__)

PENALTY_AMOUNT = 1


class PenaltyLedger:
    """Billing collaborator that books penalties into the penalty table."""

    def create_penalty(self, payer_id: str, amount: int, reason: str, guest_metadata: Optional[dict] = None):
        guest_metadata = guest_metadata or {}
        row = Penalty(
            user_id=payer_id,
            amount=amount,
            reason=reason,
            date=date.today(),
            is_paid=False,
            guest_name=guest_metadata.get('guest_name'),
            is_guest=bool(guest_metadata.get('is_guest')),
        )
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BillingError(f'Could not book penalty for {payer_id}: {exc}') from exc
        return row.to_dict()


@dataclass(frozen=True)
class PenaltyRequest:
    payer_id: str
    amount: int
    reason: str
    guest_metadata: Optional[dict] = None

    def to_dict(self):
        return {
            'payer_id': self.payer_id,
            'amount': self.amount,
            'reason': self.reason,
            'guest_metadata': self.guest_metadata,
        }


@dataclass(frozen=True)
class PenaltyOutcome:
    request: PenaltyRequest
    pending: PendingWrite

    @property
    def warning(self) -> Optional[str]:
        if self.pending.failed:
            return str(self.pending.error)
        return None


class PenaltyTrigger:
    def __init__(self, billing, dispatcher: Optional[WriteDispatcher] = None, amount: int = PENALTY_AMOUNT):
        self.billing = billing
        self.dispatcher = dispatcher or WriteDispatcher()
        self.amount = amount

    def issue_penalty(self, player: Player, rule_reason: str) -> PenaltyOutcome:
        reason = (rule_reason or '').strip()
        if not reason:
            raise ValidationError('A penalty needs a reason')
        payer_id = resolve_billing_target(player)
        metadata = None
        if isinstance(player, GuestPlayer):
            metadata = {'guest_name': player.name, 'is_guest': True}
        request = PenaltyRequest(payer_id=payer_id, amount=self.amount, reason=reason, guest_metadata=metadata)
        log.info(f"[penalty] player={player.id} payer={payer_id} reason={reason!r}")
        pending = self.dispatcher.submit(f"penalty payer={payer_id}", self._send, request)
        return PenaltyOutcome(request, pending)

    def _send(self, request: PenaltyRequest):
        try:
            result = self.billing.create_penalty(
                request.payer_id, request.amount, request.reason, request.guest_metadata,
            )
        except KniffelError:
            raise
        except Exception as exc:
            raise BillingError(f'Billing collaborator failed: {exc}') from exc
        if result is False:
            raise BillingError(f'Billing collaborator rejected penalty for {request.payer_id}')
        return result
