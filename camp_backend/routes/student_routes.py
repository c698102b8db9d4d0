"""Student routes.

Borrowals, the waitlist, fines, notification preferences and the
notification inbox for one student, addressed by NetID under
/api/students/<net_id>.
"""
from decimal import Decimal

from flask import Blueprint, g, jsonify

from errors import NotFoundError
from models.borrow import Borrow
from models.fine import Fine
from models.notification import Notification
from models.preferences import NotificationPreferences
from models.waitlist import Waitlist
from utils.decorators import json_body, student_required

# Create student blueprint
student_bp = Blueprint('student', __name__)


def _owned_borrow(student, borrow_id):
    """Load a borrow record, hiding records that belong to someone else."""
    borrow = Borrow.get_by_id(borrow_id)
    if not borrow or borrow.user_id != student.id:
        raise NotFoundError(f'Borrow record {borrow_id} not found')
    return borrow


# ==================== BORROWALS ====================

@student_bp.route('/borrowals', methods=['GET'])
@student_required
def get_borrowals(student):
    """List the student's borrowals grouped into current, upcoming and history.

    Returns:
        JSON with one list per tab, each sorted by its date ascending.
    """
    lists = Borrow.list_for_student(student.net_id)
    return jsonify({
        'success': True,
        'student': student.to_dict(),
        **{tab: [borrow.to_dict() for borrow in borrows]
           for tab, borrows in lists.items()}
    })


@student_bp.route('/borrowals', methods=['POST'])
@student_required
@json_body
def reserve_item(student):
    """Reserve an available item.

    JSON payload:
        item_id: Item to reserve.
        pickup_date: When the student will collect it.
    """
    borrow, message = Borrow.create(student.net_id, g.json.get('item_id'),
                                    g.json.get('pickup_date'))
    return jsonify({
        'success': True,
        'message': message,
        'borrowal': borrow.to_dict()
    }), 201


@student_bp.route('/borrowals/<borrow_id>/extend', methods=['POST'])
@student_required
def extend_borrowal(student, borrow_id):
    borrow, message = _owned_borrow(student, borrow_id).extend()
    return jsonify({
        'success': True,
        'message': message,
        'borrowal': borrow.to_dict()
    })


@student_bp.route('/borrowals/<borrow_id>/cancel', methods=['POST'])
@student_required
def cancel_borrowal(student, borrow_id):
    message = _owned_borrow(student, borrow_id).cancel()
    return jsonify({'success': True, 'message': message, 'borrow_id': borrow_id})


# ==================== WAITLIST ====================

@student_bp.route('/waitlist', methods=['GET'])
@student_required
def get_waitlist(student):
    """List the items the student is queued for, with their place in line."""
    return jsonify({
        'success': True,
        'waitlist': [entry.to_dict() for entry in Waitlist.list_for_student(student.id)]
    })


@student_bp.route('/waitlist', methods=['POST'])
@student_required
@json_body
def join_waitlist(student):
    """Queue for an item that is currently out.

    JSON payload:
        item_id: Item to wait for.
    """
    entry = Waitlist.join(student, g.json.get('item_id'))
    return jsonify({
        'success': True,
        'message': f'Added to the waitlist at position {entry.position}',
        'entry': entry.to_dict()
    }), 201


@student_bp.route('/waitlist/<entry_id>', methods=['DELETE'])
@student_required
def leave_waitlist(student, entry_id):
    message = Waitlist.leave(student.id, entry_id)
    return jsonify({'success': True, 'message': message, 'entry_id': entry_id})


# ==================== FINES ====================

@student_bp.route('/fines', methods=['GET'])
@student_required
def get_fines(student):
    """List the student's fines in issue order with the outstanding total."""
    fines = Fine.get_by_user(student.id)
    outstanding = sum((fine.amount for fine in fines if not fine.is_paid), Decimal('0'))
    return jsonify({
        'success': True,
        'fines': [fine.to_dict() for fine in fines],
        'outstanding': float(outstanding)
    })


@student_bp.route('/fines/<fine_id>/pay', methods=['POST'])
@student_required
@json_body
def pay_fine(student, fine_id):
    """Pay one of the student's fines.

    JSON payload:
        method: 'cash', 'card' or 'online'. Defaults to 'online'.
    """
    fine, message = Fine.pay(fine_id, g.json.get('method', 'online'), user_id=student.id)
    return jsonify({'success': True, 'message': message, 'fine': fine.to_dict()})


@student_bp.route('/payments', methods=['GET'])
@student_required
def get_payments(student):
    return jsonify({
        'success': True,
        'payments': [fine.to_dict() for fine in Fine.get_payment_history(student.id)]
    })


# ==================== PREFERENCES ====================

@student_bp.route('/preferences', methods=['GET'])
@student_required
def get_preferences(student):
    prefs = NotificationPreferences.get(student.id)
    return jsonify({'success': True, 'preferences': prefs.to_dict()})


@student_bp.route('/preferences', methods=['PUT'])
@student_required
@json_body
def save_preferences(student):
    """Save notification preferences.

    JSON payload:
        Any of email_enabled, sms_enabled, app_enabled (booleans) and
        reminder_timing ('1hour', '24hours', '48hours', '1week'). Missing
        fields keep their stored value.
    """
    prefs = NotificationPreferences.save(student.id, g.json)
    return jsonify({
        'success': True,
        'message': 'Preferences saved',
        'preferences': prefs.to_dict()
    })


@student_bp.route('/preferences/toggle/<channel>', methods=['POST'])
@student_required
def toggle_channel(student, channel):
    prefs = NotificationPreferences.toggle(student.id, channel)
    return jsonify({'success': True, 'preferences': prefs.to_dict()})


# ==================== NOTIFICATIONS ====================

@student_bp.route('/notifications', methods=['GET'])
@student_required
def get_notifications(student):
    notifications = Notification.get_by_user(student.id)
    return jsonify({
        'success': True,
        'notifications': [n.to_dict() for n in notifications],
        'unread_count': Notification.get_unread_count(student.id)
    })


@student_bp.route('/notifications/<notification_id>/read', methods=['POST'])
@student_required
def mark_notification_read(student, notification_id):
    if not Notification.mark_as_read(student.id, notification_id):
        raise NotFoundError(f'Notification {notification_id} not found')
    return jsonify({'success': True})


@student_bp.route('/notifications/read-all', methods=['POST'])
@student_required
def mark_all_notifications_read(student):
    count = Notification.mark_all_as_read(student.id)
    return jsonify({'success': True, 'updated': count})
