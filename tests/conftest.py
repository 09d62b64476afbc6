# tests/conftest.py
import os, sys
# put the project root (the folder containing "src") first on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# settings are read at import time: keep tests off real services and files
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEBUG"] = "0"
os.environ["API_KEY"] = "test-key"
os.environ["GOOGLE_MAPS_KEY"] = ""
os.environ["MAPBOX_TOKEN"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from src.server.api.delivery import get_estimator
from src.server.db.session import get_session, init_db
from src.server.main import app
from src.services import payment_reconciliation
from src.services.delivery_quote import DeliveryConfig, DeliveryQuoteEstimator
from src.services.distance_lookup import ZipTableDistanceLookup

ZIP_TABLE = {
    "76063": 0,
    "787": 195,
    "799": 590,
    "850": 1055,
}


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    return eng


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def reconciliation_log(tmp_path, monkeypatch):
    log_path = tmp_path / "payment_reconciliation.jsonl"
    monkeypatch.setattr(payment_reconciliation, "LOG_DIR", tmp_path)
    monkeypatch.setattr(payment_reconciliation, "RECONCILIATION_LOG", log_path)
    return log_path


@pytest.fixture
def client(engine, reconciliation_log):
    def _session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_estimator] = lambda: DeliveryQuoteEstimator(
        ZipTableDistanceLookup(ZIP_TABLE), DeliveryConfig()
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def api_headers():
    return {"X-FIREFLY-API-KEY": "test-key"}
