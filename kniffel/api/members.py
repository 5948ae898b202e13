from flask import Blueprint, jsonify
from kniffel import sheet_services

members = Blueprint('members', __name__)


@members.route('', methods=['GET'])
def list_members():
    """Roster available for seating. Read only; the directory lives elsewhere."""
    roster = sheet_services()['roster'].list_members()
    return jsonify([m.to_dict() for m in roster])
