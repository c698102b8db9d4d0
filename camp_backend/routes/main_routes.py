"""Public API routes: health check, role entry and the item catalogue."""
import time
from typing import Dict

from flask import Blueprint, current_app, g, jsonify, request

from errors import DatabaseUnavailableError, ValidationError
from models.database import get_db
from models.item import Item
from models.waitlist import Waitlist
from utils.decorators import json_body

main_bp = Blueprint('main', __name__)

_started_at = time.time()

# Entry point each role lands on after selecting it
ROLE_ENTRY_POINTS: Dict[str, str] = {
    'student': '/student/home',
    'staff': '/staff/dashboard',
}


@main_bp.route('/health', methods=['GET'])
def health():
    """Report service liveness and database connectivity.

    Returns:
        200 when the database is reachable, 503 otherwise.
    """
    try:
        get_db().execute('SELECT 1')
        database, status = 'connected', 200
    except DatabaseUnavailableError:
        database, status = 'unavailable', 503
    return jsonify({
        'ok': status == 200,
        'service': current_app.config.get('SERVICE_NAME', 'camp-backend'),
        'database': database,
        'uptime': round(time.time() - _started_at, 3),
    }), status


@main_bp.route('/roles', methods=['GET'])
def list_roles():
    return jsonify({
        'success': True,
        'roles': [{'role': role, 'next': target}
                  for role, target in ROLE_ENTRY_POINTS.items()]
    })


@main_bp.route('/roles/select', methods=['POST'])
@json_body
def select_role():
    """Resolve the landing page role choice to its entry point.

    JSON payload:
        role: 'student' or 'staff'.

    Nothing is stored; the response only tells the client where to go.
    """
    role = str(g.json.get('role', '')).strip().lower()
    if role not in ROLE_ENTRY_POINTS:
        raise ValidationError('role must be one of: ' + ', '.join(ROLE_ENTRY_POINTS))
    return jsonify({
        'success': True,
        'role': role,
        'next': ROLE_ENTRY_POINTS[role]
    })


@main_bp.route('/items', methods=['GET'])
def get_items():
    """List equipment, optionally filtered by ?status=available."""
    status = request.args.get('status')
    return jsonify({
        'success': True,
        'items': [item.to_dict() for item in Item.get_all(status)]
    })


@main_bp.route('/items/<item_id>', methods=['GET'])
def get_item(item_id: str):
    """One catalogue item with the length of its waitlist."""
    item = Item.require(item_id)
    return jsonify({
        'success': True,
        'item': item.to_dict(),
        'waitlist_length': Waitlist.count_waiting(item.id)
    })
