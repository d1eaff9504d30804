"""
Shared pytest fixtures for the Proposal Desk test suite.

Every test runs against its own tmp data dir: SQLite file, output dir, logs
and config path are all redirected before anything touches disk.
"""
import os
import sys
import base64
import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect DATA_DIR / OUTPUT_DIR / DB_PATH / CONFIG_PATH to tmp."""
    data = str(tmp_path / "data")
    output = os.path.join(data, "output")
    os.makedirs(output, exist_ok=True)

    from proposaldesk.core import paths, db
    monkeypatch.setattr(paths, "DATA_DIR", data)
    monkeypatch.setattr(paths, "OUTPUT_DIR", output)
    monkeypatch.setattr(paths, "LOG_DIR", os.path.join(data, "logs"))
    monkeypatch.setattr(paths, "MEDIA_DIR", os.path.join(data, "media"))
    monkeypatch.setattr(paths, "DB_PATH", os.path.join(data, "proposaldesk.db"))
    monkeypatch.setattr(paths, "CONFIG_PATH", os.path.join(data, "proposaldesk_config.json"))
    monkeypatch.setattr(db, "DB_PATH", os.path.join(data, "proposaldesk.db"))

    from proposaldesk.proposals import service
    monkeypatch.setattr(service, "_inflight", set())
    return data


@pytest.fixture
def initialized_db(temp_data_dir):
    """Tables created (proposals, settings, products)."""
    from proposaldesk.core import db
    from proposaldesk.catalog.store import init_catalog
    db.init_db()
    init_catalog()
    return temp_data_dir


# ── Flask test client ─────────────────────────────────────────────────────────

def _basic_auth_header(user="tester", pw="secret"):
    creds = base64.b64encode(f"{user}:{pw}".encode()).decode()
    return {"Authorization": f"Basic {creds}"}


class AuthenticatedClient:
    """Wraps Flask test client to add Basic Auth headers to every request."""
    def __init__(self, client, headers):
        self._client = client
        self._headers = headers

    def get(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.get(*args, **kwargs)

    def post(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.post(*args, **kwargs)

    def patch(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.patch(*args, **kwargs)

    def delete(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.delete(*args, **kwargs)


@pytest.fixture
def app(temp_data_dir, monkeypatch):
    """Flask app wired to the tmp data dir."""
    monkeypatch.setenv("DASH_USER", "tester")
    monkeypatch.setenv("DASH_PASS", "secret")
    from app import create_app
    return create_app(testing=True)


@pytest.fixture
def client(app):
    """Authenticated Flask test client (HTTP Basic Auth on every request)."""
    with app.test_client() as c:
        yield AuthenticatedClient(c, _basic_auth_header())


@pytest.fixture
def anon_client(app):
    """Unauthenticated test client."""
    with app.test_client() as c:
        yield c


# ── Sample data factories ─────────────────────────────────────────────────────

@pytest.fixture
def company_profile():
    return {
        "name": "Orbit Trading LLC",
        "address": "12 Harbour Street, Tashkent",
        "phone": "+998 71 200 0000",
        "email": "sales@orbit.example",
        "bank_account": "20208000900112233001",
        "routing_code": "00873",
        "tax_id": "305112233",
        "classification_code": "46900",
        "logo_path": "",
        "delivery_terms": {"payment_terms": "30% prepayment",
                           "delivery_time": "4-6 weeks", "incoterms": "DAP"},
        "authorized_signatory": {"title": "Director", "name": "A. Karimov"},
    }


@pytest.fixture
def sample_products():
    """Two commercial lines: one taxable with discount, one tax-exempt."""
    return [
        {"id": "p1", "name": "Industrial Pump 5kW", "category": "Pumps",
         "description": "Cast iron, 3-phase", "quantity": 2, "unit_price": 100.0,
         "discount": 10, "taxable": True, "image_url": ""},
        {"id": "p2", "name": "Installation Service", "category": "Services",
         "description": "On-site, per day", "quantity": 1, "unit_price": 50.0,
         "discount": 0, "taxable": False, "image_url": ""},
    ]


@pytest.fixture
def sample_rfq_items():
    return [
        {"id": "r1", "item_number": 1, "description": "BALL VALVE DN50",
         "technical_description": "Full bore ball valve, PN40", "manufacturer": "Bray",
         "part_number": "BV-50-40", "unit": "pcs", "quantity": 1, "unit_price": 50.0,
         "will_be_supplied": "Ball valve DN50 PN40, Bray", "specifications":
         ["Body: carbon steel", "", "Seal: PTFE"], "image_url": ""},
        {"id": "r2", "item_number": 2, "description": "GASKET SET",
         "technical_description": "Spiral wound gasket", "manufacturer": "Flexitallic",
         "part_number": "", "unit": "set", "quantity": 2, "unit_price": 30.0,
         "will_be_supplied": "", "specifications": [""], "image_url": ""},
    ]


@pytest.fixture
def sample_commercial(sample_products):
    """Valid simple-commercial proposal (passes save + send)."""
    return {
        "proposal_number": "PROP-2026-014",
        "template_type": "simple-commercial",
        "status": "draft",
        "proposal_title": "Pump station upgrade",
        "client_id": "c-100",
        "client_name": "Aqua Works Ltd",
        "client_email": "buyer@aquaworks.example",
        "company": "default",
        "company_details": {"name": "Orbit Trading LLC", "address": "12 Harbour Street",
                            "phone": "+998 71 200 0000", "email": "sales@orbit.example"},
        "tax_rate": 10,
        "discount": 0,
        "proposal_date": "2026-03-01",
        "valid_until": "2026-04-01",
        "terms": "Prices valid for 30 days.",
        "notes": "Installation scheduled after delivery.",
        "products": sample_products,
        "rfq_items": [],
    }


@pytest.fixture
def sample_technical(sample_rfq_items):
    """Valid technical-rfq proposal."""
    return {
        "proposal_number": "PROP-2026-015",
        "template_type": "technical-rfq",
        "status": "draft",
        "proposal_title": "Valve package",
        "client_id": "c-200",
        "client_name": "Refinery Operations JSC",
        "client_email": "procurement@refinery.example",
        "company": "default",
        "company_details": {"name": "Orbit Trading LLC"},
        "document_number": "TQ/2026/07",
        "tax_rate": 10,
        "discount": 0,
        "proposal_date": "2026-03-05",
        "products": [],
        "rfq_items": sample_rfq_items,
    }
