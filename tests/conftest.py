import os
import sys
import pytest

# Ensure the project root (containing the `kniffel` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from kniffel import create_app, db, socketio
from kniffel.services.sheets.roster import Member
from kniffel.services.sheets.sheet import Period, SessionContext


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIN_PLAYERS = 2
    PENALTY_AMOUNT = 1
    SHEET_CREATE_DEADLINE_SEC = 1.0
    ASYNC_WRITES = False
    LOG_LEVEL = 'DEBUG'


ROSTER = [('m1', 'Anna'), ('m2', 'Ben'), ('m3', 'Carla')]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        from kniffel.models import ClubMember
        db.create_all()
        for member_id, name in ROSTER:
            db.session.add(ClubMember(id=member_id, name=name))
        db.session.commit()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def members():
    return [Member(id=member_id, name=name) for member_id, name in ROSTER]


@pytest.fixture()
def ctx(members):
    return SessionContext(members=tuple(members), actor='m1')


@pytest.fixture()
def period():
    return Period(2026, 10)


@pytest.fixture()
def manager(flask_app):
    return flask_app.extensions['kniffel']['sheets']


@pytest.fixture()
def async_app(tmp_path):
    """App with background writes on, backed by a sqlite file the worker threads share."""
    class AsyncConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'kniffel.db'}"
        ASYNC_WRITES = True
        ASYNC_WRITES_IN_TESTS = True
        SHEET_CREATE_DEADLINE_SEC = 5.0

    application = create_app(AsyncConfig)
    with application.app_context():
        from kniffel.models import ClubMember
        db.create_all()
        for member_id, name in ROSTER:
            db.session.add(ClubMember(id=member_id, name=name))
        db.session.commit()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def async_client(async_app):
    return async_app.test_client()


@pytest.fixture()
def async_sio(async_app):
    test_client = socketio.test_client(async_app, namespace='/ws')
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
