"""Request decorators.

This module contains decorators shared by the API blueprints.
"""
from functools import wraps
from typing import Callable

from flask import g, request

from errors import ValidationError


def json_body(f: Callable) -> Callable:
    """Decorator to require a JSON object body.

    The parsed body is available as ``g.json``. An empty body is treated
    as an empty object.

    Example:
        @bp.route('/fines', methods=['POST'])
        @json_body
        def apply_fine():
            amount = g.json.get('amount')
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        data = request.get_json(silent=True)
        if data is None:
            if request.get_data(cache=True).strip():
                raise ValidationError('Request body must be valid JSON')
            data = {}
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        g.json = data
        return f(*args, **kwargs)
    return decorated_function


def student_required(f: Callable) -> Callable:
    """Decorator resolving the ``net_id`` URL segment to a student.

    The student is passed to the view as ``student`` in place of ``net_id``;
    unknown NetIDs are rejected with a 404.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from models.user import User

        net_id = kwargs.pop('net_id')
        kwargs['student'] = User.require_student(net_id)
        return f(*args, **kwargs)
    return decorated_function
