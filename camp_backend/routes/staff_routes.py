"""Staff routes.

This module handles the staff desk: the overdue list with reminders,
student lookup, fines and payments, the inventory, and checking items
out and in.
"""
from flask import Blueprint, g, jsonify, request

from errors import NotFoundError, ValidationError
from models.borrow import Borrow
from models.fine import Fine
from models.item import Item
from models.system_log import SystemLog
from models.user import User
from utils.decorators import json_body

# Create staff blueprint
staff_bp = Blueprint('staff', __name__)


def _int_arg(name: str, default: int, maximum: int) -> int:
    value = request.args.get(name, default)
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer')
    if value < 0:
        raise ValidationError(f'{name} cannot be negative')
    return min(value, maximum)


# ==================== STUDENT LOOKUP ====================

@staff_bp.route('/students/search', methods=['GET'])
def search_student():
    """Find one student by NetID or name for the fine workflow.

    Query args:
        q: NetID or part of the student's name (at least 2 characters).

    Returns:
        The student together with every fine they have.
    """
    student = User.search_student(request.args.get('q', ''))
    return jsonify({'success': True, 'student': student.to_lookup()})


@staff_bp.route('/students/<net_id>/borrowals', methods=['GET'])
def get_student_borrowals(net_id: str):
    """Every borrowal of one student, grouped the way the student sees them."""
    student = User.require_student(net_id)
    lists = Borrow.list_for_student(student.net_id)
    return jsonify({
        'success': True,
        'student': student.to_dict(),
        **{tab: [borrow.to_dict() for borrow in borrows]
           for tab, borrows in lists.items()}
    })


# ==================== INVENTORY ====================

def _staff_id(payload: dict):
    """Resolve the optional staff_net_id of a request body to a user id."""
    net_id = payload.pop('staff_net_id', None)
    if net_id is None:
        return None
    staff = User.get_by_net_id(net_id) if isinstance(net_id, str) else None
    if not staff or not staff.is_staff():
        raise NotFoundError(f'Staff member {net_id} not found')
    return staff.id


@staff_bp.route('/inventory', methods=['GET'])
def get_inventory():
    """Page through the catalogue.

    Query args:
        status: Item status filter.
        category: Category filter.
        search: Substring of the item name or location.
        limit, offset: Paging.
    """
    limit = _int_arg('limit', 50, 200)
    offset = _int_arg('offset', 0, 1_000_000)
    items, total = Item.get_inventory(
        request.args.get('status') or None,
        request.args.get('category') or None,
        request.args.get('search') or None,
        limit, offset
    )
    return jsonify({
        'success': True,
        'items': [item.to_dict() for item in items],
        'total': total,
        'limit': limit,
        'offset': offset
    })


@staff_bp.route('/items', methods=['POST'])
@json_body
def create_item():
    """Add an item.

    JSON payload:
        name, location: Required.
        category, description, condition: Optional.
        status: 'available' (default) or 'maintenance'.
        staff_net_id: Staff member adding it (optional).
    """
    payload = dict(g.json)
    staff_id = _staff_id(payload)
    item = Item.create(payload, staff_id)
    return jsonify({'success': True, 'message': f'{item.name} added', 'item': item.to_dict()}), 201


@staff_bp.route('/items/<item_id>', methods=['PUT'])
@json_body
def update_item(item_id: str):
    payload = dict(g.json)
    staff_id = _staff_id(payload)
    item = Item.require(item_id).update(payload, staff_id)
    return jsonify({'success': True, 'message': 'Item updated', 'item': item.to_dict()})


@staff_bp.route('/items/<item_id>', methods=['DELETE'])
@json_body
def delete_item(item_id: str):
    """Remove an idle item from the catalogue; its history is kept."""
    payload = dict(g.json)
    staff_id = _staff_id(payload)
    message = Item.require(item_id).retire(staff_id)
    return jsonify({'success': True, 'message': message, 'item_id': item_id})


# ==================== OVERDUE ====================

@staff_bp.route('/overdue', methods=['GET'])
def get_overdue():
    """List every active borrowal past its due date, oldest due first."""
    entries = Borrow.get_overdue_entries()
    return jsonify({'success': True, 'overdue': entries, 'count': len(entries)})


@staff_bp.route('/overdue/<borrow_id>/remind', methods=['POST'])
def send_reminder(borrow_id: str):
    """Send the student an overdue reminder.

    Repeating the call on the same day returns the reminder already sent.
    """
    notification, created = Borrow.require(borrow_id).send_reminder()
    return jsonify({
        'success': True,
        'message': 'Reminder sent' if created else 'Reminder already sent today',
        'created': created,
        'notification': notification.to_dict()
    })


@staff_bp.route('/overdue/<borrow_id>/fine', methods=['GET'])
def fine_draft(borrow_id: str):
    """Prefill the fine form for an overdue borrowal."""
    return jsonify({'success': True, 'draft': Borrow.require(borrow_id).fine_draft()})


# ==================== FINES ====================

@staff_bp.route('/fines', methods=['GET'])
def get_fines():
    """Page through all fines, optionally filtered by ?status=unpaid|paid."""
    limit = _int_arg('limit', 50, 200)
    offset = _int_arg('offset', 0, 1_000_000)
    fines, total = Fine.get_all(request.args.get('status') or None, limit, offset)
    return jsonify({
        'success': True,
        'fines': [fine.to_dict() for fine in fines],
        'total': total,
        'limit': limit,
        'offset': offset
    })


@staff_bp.route('/fines', methods=['POST'])
@json_body
def apply_fine():
    """Apply a fine to the selected student.

    JSON payload:
        net_id: Selected student (required).
        amount: Amount greater than zero.
        reason: Short reason.
        description: Optional notes.
        borrow_id: Related borrowal (optional).
        staff_net_id: Staff member applying the fine (optional).
    """
    data = g.json
    fine, message = Fine.create(
        data.get('net_id'), data.get('reason'), data.get('amount'),
        description=data.get('description', ''),
        borrow_id=data.get('borrow_id'),
        staff_net_id=data.get('staff_net_id')
    )
    return jsonify({'success': True, 'message': message, 'fine': fine.to_dict()}), 201


@staff_bp.route('/fines/<fine_id>/payment', methods=['POST'])
@json_body
def record_payment(fine_id: str):
    """Record a payment taken at the desk.

    JSON payload:
        method: 'cash', 'card' or 'online'.
    """
    fine, message = Fine.pay(fine_id, g.json.get('method'))
    return jsonify({'success': True, 'message': message, 'fine': fine.to_dict()})


# ==================== CHECK OUT / CHECK IN ====================

@staff_bp.route('/borrowals/<borrow_id>/pickup', methods=['POST'])
@json_body
def pickup(borrow_id: str):
    """Hand a reserved item to the student.

    JSON payload:
        due_date: Optional due date; defaults to the standard loan period.
    """
    borrow, message = Borrow.require(borrow_id).pickup(g.json.get('due_date'))
    return jsonify({'success': True, 'message': message, 'borrowal': borrow.to_dict()})


@staff_bp.route('/borrowals/<borrow_id>/return', methods=['POST'])
@json_body
def return_item(borrow_id: str):
    """Check an item back in.

    JSON payload:
        condition: Optional condition on return, 'good' when omitted.
    """
    borrow, message = Borrow.require(borrow_id).return_item(g.json.get('condition'))
    return jsonify({'success': True, 'message': message, 'borrowal': borrow.to_dict()})


# ==================== DASHBOARD ====================

@staff_bp.route('/stats', methods=['GET'])
def get_stats():
    return jsonify({
        'success': True,
        'borrowals': Borrow.get_stats(),
        'items': Item.get_status_counts(),
        'unpaid_fines_total': float(Fine.get_unpaid_total())
    })


@staff_bp.route('/activity', methods=['GET'])
def get_activity():
    """Recent audit log entries; ?type=system shows only background jobs."""
    limit = _int_arg('limit', 50, 200)
    activity = SystemLog.get_recent(limit, request.args.get('type') or None)
    return jsonify({'success': True, 'activity': activity})
