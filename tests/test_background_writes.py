import threading
import time

from kniffel import db, socketio
from kniffel.errors import PersistenceError
from kniffel.models import ClubMember, KniffelSheet, Penalty, ScoreCell
from kniffel.services.sheets.dispatch import WriteDispatcher
from kniffel.services.sheets.values import Field


def _wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


class _Inbox:
    """Collects socket events across polls; get_received drains the queue."""

    def __init__(self, sio_client):
        self.sio_client = sio_client
        self.events = []

    def named(self, name):
        self.events.extend(self.sio_client.get_received('/ws'))
        return [pkt['args'][0] for pkt in self.events if pkt['name'] == name]


def _create(client, player_ids=('m1', 'm2')):
    res = client.post('/api/sheets', json={'year': 2026, 'month': 10, 'player_ids': list(player_ids)})
    assert res.status_code == 201
    return res.get_json()['id']


def _cell_value(sheet_id, player_id, field):
    # drop whatever this thread's session cached; the write happened elsewhere
    db.session.rollback()
    cell = ScoreCell.query.filter_by(sheet_id=sheet_id, player_id=player_id, field=field).first()
    return cell.value if cell is not None else None


def test_dispatcher_runs_in_app_context(async_app):
    dispatcher = WriteDispatcher(async_app, background=True)
    pending = dispatcher.submit('count members', lambda: ClubMember.query.count())
    assert pending.wait(3.0)
    assert pending.error is None
    assert pending.result == 3


def test_unexpected_background_error_reaches_on_error(async_app):
    seen = []
    dispatcher = WriteDispatcher(async_app, background=True, on_error=lambda pending, error: seen.append(error))

    def broken():
        raise RuntimeError('connection reset')

    pending = dispatcher.submit('cell sheet=abc', broken, sheet_id='abc')
    assert pending.wait(3.0)
    assert isinstance(pending.error, PersistenceError)
    assert _wait_for(lambda: len(seen) == 1)
    assert seen[0].sheet_id == 'abc'
    assert 'connection reset' in str(seen[0])


def test_cell_write_is_queued_then_committed_and_published(async_client, async_sio):
    sheet_id = _create(async_client)
    async_sio.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    async_sio.get_received('/ws')
    inbox = _Inbox(async_sio)

    res = async_client.put(f'/api/sheets/{sheet_id}/cells', json={'player_id': 'm2', 'field': 'chance', 'value': 26})
    assert res.status_code == 202
    assert res.get_json()['cell']['value'] == 26

    assert _wait_for(lambda: _cell_value(sheet_id, 'm2', 'chance') == 26)
    assert _wait_for(lambda: any(
        snap['sheet']['scores']['m2']['chance'] == 26 for snap in inbox.named('sheet_snapshot')
    ))


def test_failed_background_write_goes_to_sheet_room_only(async_app, async_client, async_sio, monkeypatch):
    manager = async_app.extensions['kniffel']['sheets']
    sheet_id = _create(async_client)
    async_sio.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    async_sio.get_received('/ws')
    bystander = socketio.test_client(async_app, namespace='/ws')
    bystander.get_received('/ws')

    def broken(*args):
        raise RuntimeError('connection reset')

    monkeypatch.setattr(manager.store, 'update_cell', broken)
    inbox = _Inbox(async_sio)
    res = async_client.put(f'/api/sheets/{sheet_id}/cells', json={'player_id': 'm1', 'field': 'ones', 'value': 3})
    assert res.status_code == 202

    assert _wait_for(lambda: inbox.named('write_failed'))
    failure = inbox.named('write_failed')[0]
    assert failure['sheet_id'] == sheet_id
    assert 'connection reset' in failure['error']
    assert [pkt for pkt in bystander.get_received('/ws') if pkt['name'] == 'write_failed'] == []
    # no rollback of the optimistic value
    assert manager.get_sheet(sheet_id).cell('m1', Field.ONES).points == 3
    bystander.disconnect(namespace='/ws')


class _GatedLedger:
    def __init__(self):
        self.gate = threading.Event()
        self.calls = []

    def create_penalty(self, payer_id, amount, reason, guest_metadata=None):
        self.gate.wait(3.0)
        self.calls.append(payer_id)
        return {'user_id': payer_id}


def test_penalty_is_accepted_before_it_is_booked(async_app, async_client):
    sheet_id = _create(async_client)
    ledger = _GatedLedger()
    async_app.extensions['kniffel']['penalties'].billing = ledger
    try:
        res = async_client.post(f'/api/sheets/{sheet_id}/penalties', json={'player_id': 'm1', 'reason': 'peeked'})
        assert res.status_code == 202
        assert res.get_json()['warning'] is None
        assert ledger.calls == []
    finally:
        ledger.gate.set()
    assert _wait_for(lambda: ledger.calls == ['m1'])


def test_penalty_ledger_books_in_background(async_client):
    sheet_id = _create(async_client)
    res = async_client.post(f'/api/sheets/{sheet_id}/penalties', json={'player_id': 'm2', 'reason': 'late'})
    assert res.status_code in (201, 202)

    def booked():
        db.session.rollback()
        return Penalty.query.filter_by(user_id='m2').count() == 1

    assert _wait_for(booked)


def test_create_returns_when_deadline_passes(async_app, async_client, monkeypatch):
    manager = async_app.extensions['kniffel']['sheets']
    manager.create_deadline = 0.05
    gate = threading.Event()
    create = manager.store.create_sheet

    def slow_create(sheet):
        gate.wait(3.0)
        return create(sheet)

    monkeypatch.setattr(manager.store, 'create_sheet', slow_create)
    try:
        sheet_id = _create(async_client)
        db.session.rollback()
        assert db.session.get(KniffelSheet, sheet_id) is None
        # the local copy is served while the write is outstanding
        assert manager.get_sheet(sheet_id).player_order == ['m1', 'm2']
    finally:
        gate.set()

    def stored():
        db.session.rollback()
        return db.session.get(KniffelSheet, sheet_id) is not None

    assert _wait_for(stored)
