"""Pytest fixtures: in-memory stand-ins for every external service."""
import itertools

import pytest
from httpx import ASGITransport, AsyncClient

import config
import domain_verifier
import network_provisioner
import provisioner

SECRET = "test-provision-secret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


class FakeSupabase:
    def __init__(self):
        self.url = "https://db.example.supabase.co"
        self.service_role_key = "service-role"
        self.tables = {}
        self.fail_tables = set()
        self.writes = []
        self._ids = itertools.count(1)

    def _check(self, table):
        if table in self.fail_tables:
            raise RuntimeError(f"{table} write rejected")

    def _matches(self, row, filters):
        # PostgREST filters arrive as strings from query params
        return all(row.get(k) == v or str(row.get(k)) == str(v) for k, v in filters.items())

    def find_one(self, table, filters, columns="*"):
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                return dict(row)
        return None

    def select_rows(self, table, filters, order_by=None):
        return [dict(r) for r in self.tables.get(table, []) if self._matches(r, filters)]

    def insert_row(self, table, payload):
        self._check(table)
        rows = payload if isinstance(payload, list) else [payload]
        stored = []
        for row in rows:
            row = {"id": next(self._ids), **row}
            self.tables.setdefault(table, []).append(row)
            stored.append(dict(row))
        self.writes.append(("insert", table))
        return stored

    def update_rows(self, table, payload, filters):
        self._check(table)
        updated = []
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(payload)
                updated.append(dict(row))
        self.writes.append(("update", table))
        return updated

    def upsert_by_keys(self, table, payload, match, update_by_id=False):
        existing = self.find_one(table, match)
        if existing:
            key = {"id": existing["id"]} if update_by_id else match
            return self.update_rows(table, payload, key), "updated"
        return self.insert_row(table, payload), "inserted"


class FakeFly:
    def __init__(self):
        self.calls = []
        self.fail_on = None
        self.certificate = {"configured": False}

    def _call(self, name, *args):
        self.calls.append((name, args))
        if self.fail_on == name:
            raise RuntimeError(f"fly {name} exploded")

    def names(self):
        return [name for name, _ in self.calls]

    def get_app_image(self, app_name):
        self._call("get_app_image", app_name)
        return "registry.fly.io/base:deployment-1"

    def create_app(self, app_name, org_slug):
        self._call("create_app", app_name, org_slug)
        return {"id": app_name}

    def delete_app(self, app_name):
        self._call("delete_app", app_name)

    def set_secrets(self, app_name, secrets):
        self._call("set_secrets", app_name, secrets)
        return {}

    def allocate_ipv4(self, app_name):
        self._call("allocate_ipv4", app_name)
        return "66.241.124.10"

    def allocate_ipv6(self, app_name):
        self._call("allocate_ipv6", app_name)
        return "2a09:8280:1::1"

    def create_machine(self, app_name, image, env, region="syd"):
        self._call("create_machine", app_name, image, env, region)
        return {"id": "machine-1"}

    def add_certificate(self, app_name, hostname):
        self._call("add_certificate", app_name, hostname)
        return {"hostname": hostname}

    def check_certificate(self, app_name, hostname):
        self._call("check_certificate", app_name, hostname)
        return self.certificate


class FakeGoogle:
    def __init__(self):
        self.calls = []
        self.fail_on = set()

    def _call(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise RuntimeError(f"Google API error (500): {name} failed")

    def names(self):
        return [name for name, _ in self.calls]

    def create_ga4_property(self, display_name, site_url, time_zone="America/New_York"):
        self._call("create_ga4_property", display_name, site_url, time_zone)
        return {"property_id": "123", "measurement_id": "G-TEST123"}

    def create_gtm_container(self, name):
        self._call("create_gtm_container", name)
        return {"container_id": "9", "public_id": "GTM-TEST9"}

    def add_search_console_site(self, site_url):
        self._call("add_search_console_site", site_url)
        return {"site_url": site_url, "verification_token": "google-site-verification=abc"}

    def register_domain(self, domain, contact_email, yearly_price, notices=None):
        self._call("register_domain", domain, contact_email, yearly_price, notices)
        return {"operation_name": "operations/register-1", "status": "REGISTRATION_PENDING"}

    def configure_domain_dns(self, domain, records):
        self._call("configure_domain_dns", domain, records)
        return {"zone": "site-example-com", "name_servers": ["ns-cloud-a1.googledomains.com."]}


class FakeDoubleclicker:
    def __init__(self):
        self.payloads = []
        self.response = {"ok": True, "status_code": 200, "data": {"workspace": "ws-1"}}
        self.error = None

    def auto_onboard(self, payload):
        self.payloads.append(payload)
        if self.error:
            raise self.error
        return self.response


class FakeResend:
    def __init__(self):
        self.sent = []
        self.response = {"id": "email-1"}

    def send_email(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})
        return self.response


@pytest.fixture
def services(monkeypatch):
    """Configure every integration and swap each client for a fake."""
    for name, value in {
        "PROVISION_SECRET": SECRET,
        "NEXT_PUBLIC_SUPABASE_URL": "https://db.example.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "service-role",
        "NEXT_PUBLIC_SUPABASE_ANON_KEY": "anon",
        "DOUBLECLICKER_API_URL": "https://dc.example.com",
        "FLY_API_TOKEN": "fly-token",
        "FLY_ORG_SLUG": "acme",
        "FLY_BASE_APP": "base-blog",
        "RESEND_API_KEY": "re_test",
        "GOOGLE_SERVICE_ACCOUNT_JSON": '{"type": "service_account"}',
        "GOOGLE_CLOUD_PROJECT": "acme-project",
    }.items():
        monkeypatch.setattr(config, name, value)

    fakes = type("Services", (), {})()
    fakes.db = FakeSupabase()
    fakes.fly = FakeFly()
    fakes.google = FakeGoogle()
    fakes.doubleclicker = FakeDoubleclicker()
    fakes.resend = FakeResend()

    for module in (provisioner, network_provisioner, domain_verifier):
        monkeypatch.setattr(module, "SupabaseClient", lambda *a, **k: fakes.db)
    for module in (provisioner, domain_verifier):
        monkeypatch.setattr(module, "FlyClient", lambda *a, **k: fakes.fly)
        monkeypatch.setattr(module, "ResendClient", lambda *a, **k: fakes.resend)
    monkeypatch.setattr(provisioner, "GoogleClient", lambda *a, **k: fakes.google)
    monkeypatch.setattr(provisioner, "DoubleclickerClient", lambda *a, **k: fakes.doubleclicker)

    return fakes


@pytest.fixture
async def client():
    from app import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def site_payload():
    return {
        "username": "acme",
        "display_name": "Acme Outdoors",
        "contact_email": "owner@acme.test",
        "website_url": "https://acme.test",
        "niche": "hiking gear",
    }
