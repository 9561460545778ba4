import pytest

from uavguard import create_app, db, SEQUENCER_KEY
from uavguard.models import Analysis, STATUS_PROCESSING


@pytest.fixture
def app(tmp_path):
    """Application backed by a throwaway SQLite file and fast stages."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'uavguard.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'SOCKETIO_ASYNC_MODE': 'threading',
        'LOG_DIR': str(tmp_path / 'logs'),
        'STAGE_DELAY': 0.01,
        'SEQUENCE_TIMEOUT': 30,
        'DETECTION_SEED': 1234,
        'RECONCILE_ON_STARTUP': False,
    })
    yield app
    app.extensions[SEQUENCER_KEY].shutdown(timeout=10)
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def make_analysis(app_ctx):
    """Factory inserting an Analysis row and returning its id."""
    def _make(filename='capture.pcap', file_size=1024, status=STATUS_PROCESSING, progress=0, **fields):
        analysis = Analysis(
            filename=filename,
            file_size=file_size,
            status=status,
            progress=progress,
            **fields
        )
        db.session.add(analysis)
        db.session.commit()
        return analysis.id
    return _make
