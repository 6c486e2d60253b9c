import pytest

from api import create_app
from utils.roles import REFUGEE

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app(tmp_path):
    app = create_app("test", overrides={"DATABASE_URL": f"sqlite:///{tmp_path / 'sessions.db'}"})
    yield app
    storage = app.extensions["rnc_sessions"]["storage"]
    storage.close()
    storage.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["rnc_sessions"]


@pytest.fixture
def make_user(services):
    counter = {"n": 0}

    def _make(role=REFUGEE, email=None, password=PASSWORD, name="Amina"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.org"
        return services["users"].create_user(email, password, name=name, role=role)

    return _make


@pytest.fixture
def login(client):
    def _login(user, password=PASSWORD, user_agent="pytest-browser"):
        resp = client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": password},
            headers={"User-Agent": user_agent},
        )
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()

    return _login


def bearer(access_token):
    return {"Authorization": f"Bearer {access_token}"}
