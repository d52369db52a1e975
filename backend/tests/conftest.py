"""
Pytest fixtures for onboarding backend tests.

Provides the in-memory application, one user per role (with a second
supervisor/agent pair for scope checks), merchant payloads and auth helpers.
"""

import itertools
import shutil
import tempfile

import pytest

from onboarding import create_app
from onboarding.extensions import db
from onboarding.models import Role
from onboarding.services.auth_service import create_user
from onboarding.services import lifecycle_service


PASSWORD = "Password123!"

_unique = itertools.count(1)


@pytest.fixture(scope='session')
def upload_dir():
    path = tempfile.mkdtemp(prefix="onboarding-uploads-")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture(scope='session')
def app(upload_dir):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'STORE_RETRY_BACKOFF': 0.0,
        'EVIDENCE_UPLOAD_DIR': upload_dir,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test (schema kept)."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


def _make_user(matricule, role, supervisor=None):
    return create_user(
        matricule,
        PASSWORD,
        role=role.value,
        supervisor_id=supervisor.id if supervisor else None,
    )


@pytest.fixture(scope='function')
def supervisor(db_session):
    return _make_user("SUP001", Role.SUPERVISOR)


@pytest.fixture(scope='function')
def agent(db_session, supervisor):
    """Agent reporting to `supervisor`."""
    return _make_user("AG001", Role.AGENT, supervisor)


@pytest.fixture(scope='function')
def other_supervisor(db_session):
    return _make_user("SUP002", Role.SUPERVISOR)


@pytest.fixture(scope='function')
def other_agent(db_session, other_supervisor):
    """Agent reporting to `other_supervisor`."""
    return _make_user("AG002", Role.AGENT, other_supervisor)


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user("ADMIN001", Role.ADMIN)


@pytest.fixture(scope='function')
def call_center(db_session):
    return _make_user("CC001", Role.CALL_CENTER_SUPERVISOR)


@pytest.fixture(scope='function')
def data_entry(db_session):
    return _make_user("DE001", Role.DATA_ENTRY_AGENT)


def operator_payload(**overrides):
    n = next(_unique)
    op = {
        "last_name": "Ould Ahmed",
        "first_name": f"Operator{n}",
        "national_id": f"NNI{n:07d}",
        "phone": f"3{n:07d}",
    }
    op.update(overrides)
    return op


def merchant_payload(**overrides):
    """Business fields for a CNI merchant (evidence URLs are separate)."""
    n = next(_unique)
    data = {
        "name": f"Boutique {n}",
        "sector": "Commerce",
        "commerce_type": "Alimentation",
        "region": "Nouakchott Ouest",
        "city": "Nouakchott",
        "commune": "Tevragh Zeina",
        "latitude": 18.0858,
        "longitude": -15.9785,
        "manager_last_name": "Mohamed",
        "manager_first_name": "Sidi",
        "address": "Rue 42-110",
        "contact": f"4{n:07d}",
        "tax_id": None,
        "trade_register": None,
        "id_document_type": "CNI",
    }
    data.update(overrides)
    return data


def evidence_payload(**overrides):
    evidence = {
        "id_front_url": "/uploads/merchants/id_front-test.jpg",
        "shop_photo_url": "/uploads/merchants/shop_photo-test.jpg",
    }
    evidence.update(overrides)
    return evidence


def submission_json(operators=None, **overrides):
    """JSON body for POST /api/merchants."""
    body = merchant_payload(**overrides)
    body.update(evidence_payload())
    body["operators"] = operators if operators is not None else [operator_payload()]
    return body


def submit(agent, operators=None, **overrides):
    """Submit through the lifecycle service; returns the merchant id."""
    merchant = lifecycle_service.submit_merchant(
        agent.id,
        merchant_payload(**overrides),
        operators if operators is not None else [operator_payload()],
        evidence_payload(),
    )
    return merchant.id


def to_supervisor_validated(agent, supervisor, **overrides):
    merchant_id = submit(agent, **overrides)
    lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")
    return merchant_id


def to_finally_validated(agent, supervisor, admin, **overrides):
    merchant_id = to_supervisor_validated(agent, supervisor, **overrides)
    lifecycle_service.admin_decide(admin.id, merchant_id, "final_approve")
    return merchant_id


def get_auth_token(client, matricule: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'matricule': matricule,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """login(user) -> Authorization headers for that user."""
    def _login(user):
        token = get_auth_token(client, user.matricule)
        assert token, f"login failed for {user.matricule}"
        return auth_headers(token)
    return _login
