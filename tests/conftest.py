import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["REVERSE_GEOCODING_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="tmd_uploads_")
os.environ["DEBUG"] = "true"

import pytest
from fastapi.testclient import TestClient

from tmd.database import Base, engine, SessionLocal
from tmd.main import app
from tmd.models.user import User, Role, Department, ROLE_STAFF
from tmd.schemas.user import UserCreate
from tmd.services.account_service import AccountService

API = "/api/v1"
ADMIN_PASSWORD = "admin123"
STAFF_PASSWORD = "staff123"


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin_user(db):
    AccountService(db).ensure_default_admin("admin", ADMIN_PASSWORD, "System Administrator")
    return db.query(User).filter(User.username == "admin").first()


@pytest.fixture
def department(db):
    department = Department(department_name="Marketing", description="Marketing team", is_active=True)
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


def create_staff(db, admin, username="staff01", full_name="Nguyen Van A", department_id=None,
                 email=None):
    staff_role = db.query(Role).filter(Role.role_name == ROLE_STAFF).first()
    data = UserCreate(
        username=username,
        full_name=full_name,
        password=STAFF_PASSWORD,
        email=email,
        role_id=staff_role.role_id,
        department_id=department_id
    )
    return AccountService(db).register(data, admin.user_id)


@pytest.fixture
def staff_user(db, admin_user, department):
    return create_staff(db, admin_user, department_id=department.department_id, email="staff01@tmdcorp.com")


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def login(client, username, password):
    return client.post(f"{API}/account/login", json={"username": username, "password": password})


@pytest.fixture
def admin_client(client, admin_user):
    response = login(client, "admin", ADMIN_PASSWORD)
    assert response.status_code == 200
    return client


@pytest.fixture
def staff_client(client, staff_user):
    response = login(client, staff_user.username, STAFF_PASSWORD)
    assert response.status_code == 200
    return client
