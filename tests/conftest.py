import pytest

from app import create_app
from model import db


@pytest.fixture
def make_app(tmp_path):
    """Build an app against a fresh SQLite file; extra config overrides the defaults."""
    apps = []

    def _make_app(**overrides):
        config = {
            'TESTING': True,
            'APP_ENV': 'production',
            'LOG_DIR': None,
            'HASH_PROFILE_PASSWORDS': False,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'farmconnect.db'}",
        }
        config.update(overrides)
        app = create_app(config)
        apps.append(app)
        return app

    yield _make_app

    for app in apps:
        with app.app_context():
            db.engine.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pears():
    return {
        'name': 'Farmer X',
        'productname': 'Pears',
        'priceperkg_l': 25,
        'amountkg_l': 10,
        'description': 'Sweet pears',
    }
