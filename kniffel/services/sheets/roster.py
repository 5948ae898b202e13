"""Members, guests, and the ordered player list of a sheet."""

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from kniffel.errors import UnresolvableHostError, ValidationError

log = logging.getLogger(__name__)

GUEST_PREFIX = 'guest_'
GUEST_NAME_MIN_LENGTH = 2
# column widths of member ids and guest names
GUEST_ID_MAX_LENGTH = 64
GUEST_NAME_MAX_LENGTH = 128


@dataclass(frozen=True)
class Member:
    """Permanent roster identity, usable across sessions."""
    id: str
    name: str

    is_guest = False

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'is_guest': False}


@dataclass(frozen=True)
class GuestPlayer:
    """Player scoped to one sheet and billed through a host member."""
    id: str
    name: str
    host_member_id: Optional[str]

    is_guest = True

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'is_guest': True,
            'host_member_id': self.host_member_id,
        }

    @classmethod
    def from_dict(cls, data) -> 'GuestPlayer':
        data = data or {}
        guest_id = data.get('id')
        if not guest_id:
            raise ValidationError('Guest id is required')
        return cls(
            id=str(guest_id),
            name=(data.get('name') or '').strip(),
            host_member_id=data.get('host_member_id') or None,
        )


Player = Union[Member, GuestPlayer]


def new_guest_id() -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{GUEST_PREFIX}{int(time.time() * 1000)}_{suffix}"


def validate_guest(guest: GuestPlayer, members: Iterable[Member]) -> GuestPlayer:
    """Reject a guest with a bad name or id, or a host who is not a member."""
    if len(guest.id) > GUEST_ID_MAX_LENGTH:
        raise ValidationError(f'Guest id must be at most {GUEST_ID_MAX_LENGTH} characters')
    if len(guest.name.strip()) < GUEST_NAME_MIN_LENGTH:
        raise ValidationError(f'Guest name must be at least {GUEST_NAME_MIN_LENGTH} characters')
    if len(guest.name) > GUEST_NAME_MAX_LENGTH:
        raise ValidationError(f'Guest name must be at most {GUEST_NAME_MAX_LENGTH} characters')
    if not guest.host_member_id:
        raise ValidationError(f'Guest {guest.name} needs a host member')
    if guest.host_member_id not in {m.id for m in members}:
        raise ValidationError(f'Host {guest.host_member_id} of guest {guest.name} is not a member')
    return guest


def make_guest(name: str, host_member_id: Optional[str], members: Iterable[Member]) -> GuestPlayer:
    guest = GuestPlayer(id=new_guest_id(), name=(name or '').strip(), host_member_id=host_member_id)
    return validate_guest(guest, members)


def resolve_player(player_id: str, members: Sequence[Member], guests: Sequence[GuestPlayer]) -> Optional[Player]:
    for member in members:
        if member.id == player_id:
            return member
    for guest in guests:
        if guest.id == player_id:
            return guest
    return None


def resolve_players(player_order: Sequence[str], members: Sequence[Member],
                    guests: Sequence[GuestPlayer]) -> List[Player]:
    """Walk the persisted order and resolve each id, members first.

    Ids that resolve to neither (a member removed after the sheet was
    created) are dropped rather than raised.
    """
    players: List[Player] = []
    for player_id in player_order:
        player = resolve_player(player_id, members, guests)
        if player is None:
            log.info(f"[resolve-skip] player={player_id} not in roster or guests")
            continue
        players.append(player)
    return players


def resolve_billing_target(player: Player) -> str:
    if isinstance(player, Member):
        return player.id
    if isinstance(player, GuestPlayer):
        if not player.host_member_id:
            raise UnresolvableHostError(player.id)
        return player.host_member_id
    raise TypeError(f'Unknown player kind: {type(player).__name__}')
