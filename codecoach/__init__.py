import logging
import os

from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, jsonify

from codecoach.config import config_map
from codecoach.extensions import db

__version__ = '0.1.0'


def create_app(config_name=None):
    """Application factory for creating the Flask app instance.

    Args:
        config_name: Configuration name ('development', 'production' or
                     'testing'). Defaults to FLASK_ENV or 'development'.

    Returns:
        Configured Flask application instance.
    """
    # Load environment variables from the appropriate .env file
    env = config_name or os.environ.get('FLASK_ENV', 'development')
    env_file = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        f'.env.{env}',
    )
    if os.path.exists(env_file):
        load_dotenv(env_file)

    # Also load a local .env if it exists (overrides the environment-specific one)
    dotenv_path = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        '.env',
    )
    if os.path.exists(dotenv_path) and env != 'testing':
        load_dotenv(dotenv_path, override=True)

    # Determine final config name after env files are loaded
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    config_class = config_map.get(config_name, config_map['development'])
    app.config.from_object(config_class)

    _configure_logging(app)

    db.init_app(app)

    _register_blueprints(app)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'version': __version__})

    # Initialize scheduler if enabled
    if app.config.get('SCHEDULER_ENABLED'):
        _init_scheduler(app)

    # Create database tables if they don't exist
    with app.app_context():
        db.create_all()
        _release_stale_leases(app)

    return app


def _configure_logging(app):
    """Set up RotatingFileHandler on the root logger."""
    max_bytes = app.config.get('LOG_FILE_MAX_BYTES', 0)
    if not max_bytes:
        return

    log_dir = os.path.join(app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, 'codecoach.log')
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=app.config.get('LOG_FILE_BACKUP_COUNT', 3),
    )
    handler.setFormatter(logging.Formatter(
        app.config.get('LOG_FORMAT', '%(asctime)s [%(levelname)s] %(name)s: %(message)s')
    ))
    handler.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.WARNING:
        root.setLevel(logging.DEBUG)


def _release_stale_leases(app):
    """Clear processing leases that expired while the process was down."""
    from codecoach.models import Submission
    from codecoach.utils import utcnow
    try:
        count = Submission.query.filter(
            Submission.lease_owner.isnot(None),
            Submission.lease_expires_at < utcnow(),
        ).update(
            {Submission.lease_owner: None, Submission.lease_expires_at: None},
            synchronize_session=False,
        )
        if count:
            db.session.commit()
            app.logger.info(f'Released {count} stale submission lease(s)')
    except Exception:
        db.session.rollback()
        raise


def _register_blueprints(app):
    """Register all application blueprints."""
    from codecoach.views.api import api_bp

    app.register_blueprint(api_bp)


def _init_scheduler(app):
    """Initialize and start APScheduler for background tasks."""
    from codecoach.tasks.scheduler import init_scheduler
    init_scheduler(app)
