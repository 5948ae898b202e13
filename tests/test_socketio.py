from kniffel.errors import BillingError


def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def _new_sheet(client):
    res = client.post('/api/sheets', json={'year': 2026, 'month': 10, 'player_ids': ['m1', 'm2']})
    return res.get_json()['id']


def test_socket_connect_and_join(sio_client, client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')  # flush

    sheet_id = _new_sheet(client)
    sio_client.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    received = sio_client.get_received('/ws')
    names = [pkt['name'] for pkt in received]
    assert 'joined' in names
    snapshot = next(pkt for pkt in received if pkt['name'] == 'sheet_snapshot')
    assert snapshot['args'][0]['sheet']['id'] == sheet_id


def test_join_unknown_sheet(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_sheet', {'sheet_id': 'nope'}, namespace='/ws')
    assert _events(sio_client, 'error')


def test_cell_update_is_broadcast(sio_client, client):
    sheet_id = _new_sheet(client)
    sio_client.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    sio_client.get_received('/ws')  # flush join traffic

    client.put(f'/api/sheets/{sheet_id}/cells', json={'player_id': 'm2', 'field': 'chance', 'value': 26})
    snapshots = _events(sio_client, 'sheet_snapshot')
    assert snapshots
    assert snapshots[-1]['args'][0]['sheet']['scores']['m2']['chance'] == 26


def test_delete_is_broadcast(sio_client, client):
    sheet_id = _new_sheet(client)
    sio_client.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    sio_client.get_received('/ws')

    client.delete(f'/api/sheets/{sheet_id}')
    snapshots = _events(sio_client, 'sheet_snapshot')
    assert snapshots[-1]['args'][0]['deleted'] is True


def test_leave_stops_updates(sio_client, client):
    sheet_id = _new_sheet(client)
    sio_client.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    sio_client.emit('leave_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    sio_client.get_received('/ws')

    client.put(f'/api/sheets/{sheet_id}/cells', json={'player_id': 'm1', 'field': 'ones', 'value': 2})
    assert _events(sio_client, 'sheet_snapshot') == []


class _BrokenLedger:
    def create_penalty(self, payer_id, amount, reason, guest_metadata=None):
        raise BillingError(f'Could not book penalty for {payer_id}: db down')


def test_billing_failure_is_not_broadcast(flask_app, sio_client, client):
    from kniffel import socketio as _sio
    sheet_id = _new_sheet(client)
    sio_client.emit('join_sheet', {'sheet_id': sheet_id}, namespace='/ws')
    sio_client.get_received('/ws')
    bystander = _sio.test_client(flask_app, namespace='/ws')
    bystander.get_received('/ws')
    flask_app.extensions['kniffel']['penalties'].billing = _BrokenLedger()

    res = client.post(f'/api/sheets/{sheet_id}/penalties', json={'player_id': 'm2', 'reason': 'peeked'})
    assert res.status_code == 200
    assert 'db down' in res.get_json()['warning']
    assert _events(bystander, 'write_failed') == []
    assert _events(sio_client, 'write_failed') == []
    bystander.disconnect(namespace='/ws')
