"""C.A.M.P. equipment borrowing service - Flask Application.

Fat Models, Skinny Controllers: routes only translate HTTP to model calls,
and the error handlers below translate model exceptions back to JSON.
"""
import atexit
import logging
import os

from flask import Flask, jsonify
from flask_socketio import join_room, leave_room
from werkzeug.exceptions import HTTPException

from config.config import Config
from errors import CampError
from extensions import socketio, user_room
from models.database import bootstrap_database, close_db
from models.user import User
from routes import main_bp, staff_bp, student_bp
from scheduled_tasks import shutdown_scheduler, start_scheduler

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(test_config=None):
    """Create and configure the Flask application.

    Args:
        test_config: Optional mapping applied on top of Config.

    Returns:
        The configured Flask app. A database that cannot be reached at
        startup is logged and retried on each request.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    logging.getLogger().setLevel(app.config['LOG_LEVEL'])

    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'])
    app.teardown_appcontext(close_db)

    app.register_blueprint(main_bp, url_prefix='/api')
    app.register_blueprint(student_bp, url_prefix='/api/students/<net_id>')
    app.register_blueprint(staff_bp, url_prefix='/api/staff')
    register_error_handlers(app)

    bootstrap_database(app)

    # Start background tasks
    if app.config['SCHEDULER_ENABLED']:
        start_scheduler(app)
        atexit.register(shutdown_scheduler)

    return app


def register_error_handlers(app):
    @app.errorhandler(CampError)
    def handle_camp_error(error):
        if error.status_code >= 500:
            logger.error('%s: %s', error.error, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'error': error.name.lower().replace(' ', '_'),
            'message': error.description
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled error')
        return jsonify({
            'success': False,
            'error': 'internal_error',
            'message': 'An unexpected error occurred'
        }), 500


# --- Socket.IO Events ---

@socketio.on('subscribe')
def handle_subscribe(data):
    """Join the room that receives a student's notification pushes."""
    net_id = (data or {}).get('net_id')
    try:
        student = User.require_student(net_id)
    except CampError as e:
        return e.to_dict()
    join_room(user_room(student.id))
    return {'success': True, 'net_id': student.net_id}


@socketio.on('unsubscribe')
def handle_unsubscribe(data):
    net_id = (data or {}).get('net_id')
    student = User.get_by_net_id(net_id)
    if student:
        leave_room(user_room(student.id))
    return {'success': True}


if __name__ == '__main__':
    socketio.run(create_app(), host='0.0.0.0',
                 port=int(os.environ.get('PORT', 3000)),
                 allow_unsafe_werkzeug=True)
