import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

# Setup SQLAlchemy
class Base(DeclarativeBase):
    pass

# Initialize extensions
db = SQLAlchemy(model_class=Base)
socketio = SocketIO()

SEQUENCER_KEY = 'stage_sequencer'


def configure_logging(app):
    """
    Configure root logging and the alerts log for the application.

    Detected attacks are logged at WARNING level by the result synthesizer,
    so the alerts handler only receives those and other problems.
    """
    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))

    log_dir = app.config['LOG_DIR']
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError:
        logger.error(f"Error creating logs directory {log_dir}")
        return

    # Replace the handler left by a previously created app
    for handler in list(logger.handlers):
        if getattr(handler, 'name', None) == 'alerts':
            logger.removeHandler(handler)
            handler.close()

    # Create a handler for the alerts.log file
    alerts_handler = logging.FileHandler(os.path.join(log_dir, 'alerts.log'))
    alerts_handler.set_name('alerts')
    alerts_handler.setLevel(logging.WARNING)
    alerts_formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    alerts_handler.setFormatter(alerts_formatter)
    logger.addHandler(alerts_handler)


def create_app(test_config=None):
    # Create and configure the app
    app = Flask(__name__, instance_relative_config=True)

    # Enable CORS for the browser dashboard
    CORS(app)

    # Load configuration, then overlay the test config if passed in
    app.config.from_object('uavguard.config.Config')
    if test_config is not None:
        app.config.from_mapping(test_config)

    configure_logging(app)

    # Initialize the database
    db.init_app(app)

    # Initialize SocketIO
    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE'),
    )

    with app.app_context():
        # Import models to ensure they're registered with SQLAlchemy
        from uavguard import models
        from uavguard.detection import RandomDetectionPolicy
        from uavguard.sequencer import StageSequencer, reconcile_stale_analyses
        from uavguard.synthesizer import ResultSynthesizer

        # Create all database tables
        db.create_all()

        if app.config.get('RECONCILE_ON_STARTUP'):
            reconcile_stale_analyses(db, app.config['STALE_ANALYSIS_AGE'])

        policy = RandomDetectionPolicy(seed=app.config.get('DETECTION_SEED'))
        synthesizer = ResultSynthesizer(db, policy, log_dir=app.config['LOG_DIR'])
        app.extensions[SEQUENCER_KEY] = StageSequencer(
            app,
            db,
            synthesizer,
            socketio,
            delay=app.config['STAGE_DELAY'],
            timeout=app.config.get('SEQUENCE_TIMEOUT'),
        )

        # Register blueprints
        from uavguard.routes import api_bp
        app.register_blueprint(api_bp)

        return app
