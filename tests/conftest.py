"""
Test Configuration and Fixtures
Shared testing infrastructure for the pipe yard
"""

import os
import tempfile

# Settings are read at import time; point them at a throwaway SQLite file
_TEST_DB = os.path.join(tempfile.gettempdir(), "pipeyard_test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["LOG_TO_FILE"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from decimal import Decimal
from typing import Callable, Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pipeyard import models  # noqa: F401
from pipeyard.api.deps import get_notification_dispatch
from pipeyard.core.database import Base, SessionLocal, engine, get_db
from pipeyard.main import app
from pipeyard.models.auth import Company, User
from pipeyard.models.yard import AllocationMode, Rack, YardArea
from pipeyard.models.storage_request import StorageRequest
from pipeyard.models.trucking import TruckingLoad
from pipeyard.services.auth_service import AuthService
from pipeyard.services.load_workflow import LoadWorkflowService
from pipeyard.services.request_workflow import RequestWorkflowService

ADMIN_PASSWORD = "adminpassword123"
CUSTOMER_PASSWORD = "customerpassword123"


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def dispatched() -> List[bool]:
    """Records each scheduled notification dispatch"""
    return []


@pytest.fixture(scope="function")
def client(db_session: Session, dispatched: List[bool]) -> Generator[TestClient, None, None]:
    """Create a test client with database and notification overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_dispatch():
        return lambda: dispatched.append(True)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatch] = override_dispatch
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def company(db_session: Session) -> Company:
    company = Company(name="Permian Drilling Ltd", domain="permian.example.com")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def other_company(db_session: Session) -> Company:
    company = Company(name="Bakken Energy Inc", domain="bakken.example.com")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def admin_user(db_session: Session) -> User:
    """Yard admin (no company)"""
    return AuthService(db_session).create_user(
        username="yardadmin",
        email="admin@example.com",
        full_name="Yard Admin",
        password=ADMIN_PASSWORD,
        is_admin=True,
    )


@pytest.fixture
def customer_user(db_session: Session, company: Company) -> User:
    return AuthService(db_session).create_user(
        username="customer",
        email="ops@permian.example.com",
        full_name="Permian Operations",
        password=CUSTOMER_PASSWORD,
        company_id=company.id,
    )


@pytest.fixture
def other_customer_user(db_session: Session, other_company: Company) -> User:
    return AuthService(db_session).create_user(
        username="othercustomer",
        email="ops@bakken.example.com",
        full_name="Bakken Operations",
        password=CUSTOMER_PASSWORD,
        company_id=other_company.id,
    )


@pytest.fixture
def rack_factory(db_session: Session) -> Callable[..., Rack]:
    """Creates (and commits) a rack, adding its yard area when missing"""
    def make_rack(rack_id: str = "B-N-1", capacity: int = 200, capacity_length="2400",
                  occupied: int = 0, occupied_length="0",
                  mode: str = AllocationMode.LINEAR_CAPACITY.value) -> Rack:
        yard_id, area_code, _ = rack_id.split("-")
        area_id = f"{yard_id}-{area_code}"
        if db_session.get(YardArea, area_id) is None:
            db_session.add(YardArea(id=area_id, yard_id=yard_id, yard_name=f"Yard {yard_id}",
                                    name=f"Area {area_code}", allocation_mode=mode))
            db_session.flush()
        rack = Rack(
            id=rack_id,
            area_id=area_id,
            name=rack_id,
            capacity=capacity,
            capacity_length=Decimal(capacity_length),
            occupied=occupied,
            occupied_length=Decimal(occupied_length),
            allocation_mode=mode,
        )
        db_session.add(rack)
        db_session.commit()
        return rack

    return make_rack


@pytest.fixture
def rack(rack_factory) -> Rack:
    return rack_factory("B-N-1")


@pytest.fixture
def approved_request(db_session: Session, company: Company, admin_user: User, rack: Rack) -> StorageRequest:
    """60-joint request approved onto rack B-N-1"""
    service = RequestWorkflowService(db_session)
    request = service.submit_request(company.id, "ops@permian.example.com", {
        "item_type": "Drill Pipe",
        "grade": "L80",
        "total_joints": 60,
    })
    return service.approve_request(request.id, [rack.id], actor_id=admin_user.username)


@pytest.fixture
def manifest_payload() -> Dict:
    """Two-line manifest for 60 joints; the second line has no tally length"""
    return {
        "document_type": "MANIFEST",
        "file_name": "load-1-manifest.pdf",
        "declared_total_joints": 60,
        "lines": [
            {"quantity": 40, "heat_number": "H-1182", "grade": "L80", "tally_length_ft": "31.2"},
            {"quantity": 20, "heat_number": "H-1183", "grade": "L80"},
        ],
    }


@pytest.fixture
def inbound_load(db_session: Session, company: Company, admin_user: User,
                 approved_request: StorageRequest, manifest_payload: Dict) -> TruckingLoad:
    """Approved inbound load with its manifest attached"""
    service = LoadWorkflowService(db_session)
    load = service.book_load(approved_request.id, company.id, {
        "direction": "INBOUND",
        "trucking_company": "Lone Star Haulage",
    })
    service.approve_load(load.id, actor_id=admin_user.username)
    service.manifests.attach_manifest(load.id, manifest_payload, uploaded_by=admin_user.username)
    return load


def _login(client: TestClient, username: str, password: str) -> Dict[str, str]:
    response = client.post("/api/v1/auth/login", data={"username": username, "password": password})
    assert response.status_code == 200
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_auth_headers(client: TestClient, admin_user: User) -> Dict[str, str]:
    """Get authentication headers for the yard admin"""
    return _login(client, admin_user.username, ADMIN_PASSWORD)


@pytest.fixture
def customer_auth_headers(client: TestClient, customer_user: User) -> Dict[str, str]:
    """Get authentication headers for the customer user"""
    return _login(client, customer_user.username, CUSTOMER_PASSWORD)


@pytest.fixture
def other_customer_auth_headers(client: TestClient, other_customer_user: User) -> Dict[str, str]:
    return _login(client, other_customer_user.username, CUSTOMER_PASSWORD)
