import os


def _optional_float(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    if value.strip().lower() in ('', 'none', 'off'):
        return None
    return float(value)


class Config:
    """Configuration settings for the UAV Guard application."""

    # Database configuration
    # Use DATABASE_URL environment variable, or default to SQLite for development
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///uavguard.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

    # Flask configuration
    DEBUG = os.environ.get('FLASK_DEBUG', '0') == '1'
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_UPLOAD_BYTES', 512 * 1024 * 1024))
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', 8000))

    # Socket.IO async mode; None lets Flask-SocketIO pick one
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Analysis pipeline
    STAGE_DELAY = float(os.environ.get('STAGE_DELAY', 2.0))  # seconds between stages
    SEQUENCE_TIMEOUT = _optional_float('SEQUENCE_TIMEOUT', 120.0)
    DETECTION_SEED = int(os.environ['DETECTION_SEED']) if os.environ.get('DETECTION_SEED') else None
    ALLOWED_EXTENSIONS = ('.pcap',)

    # Stuck analyses left behind by a previous process
    RECONCILE_ON_STARTUP = os.environ.get('RECONCILE_ON_STARTUP', '1') == '1'
    STALE_ANALYSIS_AGE = float(os.environ.get('STALE_ANALYSIS_AGE', 600))

    # Query limits
    DEFAULT_LIST_LIMIT = 50
    MAX_LIST_LIMIT = 500
