from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from kniffel import sheet_services
from kniffel.errors import SheetNotFoundError
from typing import Dict, Set


# sid -> sheet ids the socket has joined
_sid_to_sheets: Dict[str, Set[str]] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _room(sheet_id: str) -> str:
    return f"sheet:{sheet_id}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    sheets = _sid_to_sheets.pop(_get_sid(), set())
    if sheets:
        current_app.logger.info(f"[ws-disconnect] sid={_get_sid()} sheets={sorted(sheets)}")


def handle_join_sheet(data):
    sheet_id = (data or {}).get('sheet_id')
    if not sheet_id:
        emit('error', {'message': 'sheet_id is required'})
        return
    try:
        sheet = sheet_services()['sheets'].get_sheet(sheet_id)
    except SheetNotFoundError as exc:
        emit('error', {'message': str(exc)})
        return
    room = _room(sheet_id)
    join_room(room)
    _sid_to_sheets.setdefault(_get_sid(), set()).add(sheet_id)
    emit('joined', {'room': room})
    # New subscribers start from the current document
    emit('sheet_snapshot', {'sheet_id': sheet_id, 'sheet': sheet.to_dict(), 'deleted': False})


def handle_leave_sheet(data):
    sheet_id = (data or {}).get('sheet_id')
    if not sheet_id:
        emit('error', {'message': 'sheet_id is required'})
        return
    room = _room(sheet_id)
    leave_room(room)
    _sid_to_sheets.get(_get_sid(), set()).discard(sheet_id)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from kniffel import socketio

    # Primary namespace
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('join_sheet', handle_join_sheet, namespace='/ws')
    socketio.on_event('leave_sheet', handle_leave_sheet, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('join_sheet', handle_join_sheet, namespace='/')
        socketio.on_event('leave_sheet', handle_leave_sheet, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
