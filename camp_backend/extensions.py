"""Flask extensions initialization module.

This module initializes all Flask extensions to prevent circular imports.
Extensions are created here and bound to the app in create_app().
"""
from flask_socketio import SocketIO

# Bound to the app (and its CORS setting) in create_app()
socketio: SocketIO = SocketIO(async_mode='threading')


def user_room(user_id: str) -> str:
    """Socket.IO room that receives pushes for one user."""
    return f'user:{user_id}'
