from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from kniffel import sheet_services
from kniffel.errors import (
    PersistenceError,
    ResolutionError,
    SheetNotFoundError,
    UnresolvableHostError,
    ValidationError,
)
from kniffel.services.sheets.roster import GuestPlayer
from kniffel.services.sheets.sheet import Period, SessionContext


sheets = Blueprint('sheets', __name__)


def _context(data=None) -> SessionContext:
    members = sheet_services()['roster'].list_members()
    actor = request.headers.get('X-Actor') or (data or {}).get('actor')
    return SessionContext(members=tuple(members), actor=actor)


def _write_status() -> int:
    # 202 when the write was only queued
    return 200 if sheet_services()['sheets'].dispatcher.inline else 202


def _translate_errors(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except ValidationError as exc:
            return jsonify({'error': str(exc)}), 400
        except (SheetNotFoundError, ResolutionError) as exc:
            return jsonify({'error': str(exc)}), 404
        except PersistenceError as exc:
            current_app.logger.error(f"[persist-failed] sheet={exc.sheet_id} error={exc}")
            return jsonify({'error': str(exc), 'sheet_id': exc.sheet_id}), 502
    return wrapper


def _cell_response(ctx, sheet_id, player_id, field, value):
    manager = sheet_services()['sheets']
    payload = {
        'cell': {'player_id': player_id, 'field': field, 'value': value.to_json()},
        'state': manager.view(ctx, sheet_id).to_dict(),
    }
    return jsonify(payload), _write_status()


@sheets.route('', methods=['GET'])
@_translate_errors
def list_sheets():
    period = Period.of(request.args.get('year'), request.args.get('month'))
    found = sheet_services()['sheets'].list_sheets(period)
    return jsonify([
        {
            'id': s.id,
            'year': s.year,
            'month': s.month,
            'created_at': s.created_at.isoformat() if s.created_at else None,
            'player_count': len(s.player_order),
        }
        for s in found
    ])


@sheets.route('', methods=['POST'])
@_translate_errors
def create_sheet():
    data = request.get_json(silent=True) or {}
    player_ids = data.get('player_ids')
    if not isinstance(player_ids, list):
        return jsonify({'error': 'player_ids must be a list'}), 400
    guests_raw = data.get('guests') or []
    if not isinstance(guests_raw, list):
        return jsonify({'error': 'guests must be a list'}), 400
    period = Period.of(data.get('year'), data.get('month'))
    guests = [GuestPlayer.from_dict(g) for g in guests_raw]
    ctx = _context(data)
    sheet = sheet_services()['sheets'].create_sheet(ctx, period, player_ids, guests)
    return jsonify(sheet.to_dict()), 201


@sheets.route('/<string:sheet_id>', methods=['GET'])
@_translate_errors
def get_sheet_state(sheet_id):
    manager = sheet_services()['sheets']
    ctx = _context()
    manager.refresh(sheet_id)
    return jsonify(manager.view(ctx, sheet_id, request.args.get('sort')).to_dict())


@sheets.route('/<string:sheet_id>/cells', methods=['PUT'])
@_translate_errors
def set_cell(sheet_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    field = data.get('field')
    if not all([player_id, field]) or 'value' not in data:
        return jsonify({'error': 'player_id, field and value are required'}), 400
    ctx = _context(data)
    value = sheet_services()['sheets'].set_cell(ctx, sheet_id, player_id, field, data['value'])
    return _cell_response(ctx, sheet_id, player_id, field, value)


@sheets.route('/<string:sheet_id>/cells/dice', methods=['POST'])
@_translate_errors
def enter_dice_count(sheet_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    field = data.get('field')
    if not all([player_id, field]) or 'dice_count' not in data:
        return jsonify({'error': 'player_id, field and dice_count are required'}), 400
    ctx = _context(data)
    value = sheet_services()['sheets'].enter_dice_count(ctx, sheet_id, player_id, field, data['dice_count'])
    return _cell_response(ctx, sheet_id, player_id, field, value)


@sheets.route('/<string:sheet_id>/cells/toggle', methods=['POST'])
@_translate_errors
def toggle_fixed(sheet_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    field = data.get('field')
    if not all([player_id, field]):
        return jsonify({'error': 'player_id and field are required'}), 400
    ctx = _context(data)
    value = sheet_services()['sheets'].toggle_fixed(ctx, sheet_id, player_id, field)
    return _cell_response(ctx, sheet_id, player_id, field, value)


@sheets.route('/<string:sheet_id>/cells/stroke', methods=['POST'])
@_translate_errors
def toggle_stroke(sheet_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    field = data.get('field')
    if not all([player_id, field]):
        return jsonify({'error': 'player_id and field are required'}), 400
    ctx = _context(data)
    value = sheet_services()['sheets'].toggle_stroke(ctx, sheet_id, player_id, field)
    return _cell_response(ctx, sheet_id, player_id, field, value)


@sheets.route('/<string:sheet_id>/order', methods=['PUT'])
@_translate_errors
def reorder_players(sheet_id):
    data = request.get_json(silent=True) or {}
    new_order = data.get('player_order')
    if not isinstance(new_order, list):
        return jsonify({'error': 'player_order must be a list'}), 400
    ctx = _context(data)
    manager = sheet_services()['sheets']
    manager.reorder_players(ctx, sheet_id, new_order)
    return jsonify(manager.view(ctx, sheet_id).to_dict()), _write_status()


@sheets.route('/<string:sheet_id>', methods=['DELETE'])
@_translate_errors
def delete_sheet(sheet_id):
    sheet_services()['sheets'].delete_sheet(_context(), sheet_id)
    return jsonify({'message': 'Sheet deleted', 'sheet_id': sheet_id}), _write_status()


@sheets.route('/<string:sheet_id>/penalties', methods=['POST'])
@_translate_errors
def issue_penalty(sheet_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    reason = data.get('reason')
    if not all([player_id, reason]):
        return jsonify({'error': 'player_id and reason are required'}), 400
    ctx = _context(data)
    player = sheet_services()['sheets'].find_player(ctx, sheet_id, player_id)
    try:
        outcome = sheet_services()['penalties'].issue_penalty(player, reason)
    except UnresolvableHostError as exc:
        return jsonify({'error': str(exc)}), 400
    payload = {'penalty': outcome.request.to_dict(), 'warning': outcome.warning}
    if outcome.warning:
        # the score entry stands; the caller only shows the warning
        current_app.logger.warning(f"[penalty-failed] sheet={sheet_id} player={player_id} warning={outcome.warning}")
        return jsonify(payload), 200
    if not outcome.pending.done:
        return jsonify(payload), 202
    return jsonify(payload), 201
