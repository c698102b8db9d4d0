"""Routes package initialization.

This module exports all blueprints for registration in the main app.

Blueprint organization:
    - main_bp: Health check, role entry and items (/api)
    - student_bp: One student's borrowals, fines and inbox (/api/students/<net_id>)
    - staff_bp: Overdue desk, fines and check out/in (/api/staff)
"""
from routes.main_routes import main_bp
from routes.staff_routes import staff_bp
from routes.student_routes import student_bp

__all__ = [
    'main_bp',
    'student_bp',
    'staff_bp',
]
