"""End-to-end tests for POST /api/provision against fake external services."""
import re

import config
from conftest import AUTH, SECRET


async def _provision(client, payload, headers=AUTH):
    return await client.post("/api/provision", json=payload, headers=headers)


def _no_external_calls(services):
    return (
        not services.db.writes
        and not services.fly.calls
        and not services.google.calls
        and not services.doubleclicker.payloads
        and not services.resend.sent
    )


# --- Request-level failures ---

async def test_missing_username_is_rejected_before_any_call(client, services, site_payload):
    del site_payload["username"]
    resp = await _provision(client, site_payload)

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "username" in resp.json()["error"]
    assert _no_external_calls(services)


async def test_requires_website_url_or_niche(client, services, site_payload):
    del site_payload["website_url"]
    del site_payload["niche"]
    resp = await _provision(client, site_payload)

    assert resp.status_code == 400
    assert "website_url or niche" in resp.json()["error"]
    assert _no_external_calls(services)


async def test_wrong_token_is_unauthorized_without_reading_body(client, services):
    resp = await client.post(
        "/api/provision",
        content=b"this is not json",
        headers={"Authorization": "Bearer wrong", "Content-Type": "application/json"},
    )
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Unauthorized"}
    assert _no_external_calls(services)


async def test_missing_auth_header_is_unauthorized(client, services, site_payload):
    resp = await client.post("/api/provision", json=site_payload)
    assert resp.status_code == 401
    assert _no_external_calls(services)


async def test_unconfigured_secret_is_server_error(client, services, site_payload, monkeypatch):
    monkeypatch.setattr(config, "PROVISION_SECRET", "")
    resp = await _provision(client, site_payload)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Provisioning not configured"


async def test_unconfigured_database_is_server_error(client, services, site_payload, monkeypatch):
    monkeypatch.setattr(config, "SUPABASE_SERVICE_ROLE_KEY", "")
    resp = await _provision(client, site_payload)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Database not configured"
    assert _no_external_calls(services)


# --- Seeding ---

async def test_seeds_all_four_tables(client, services, site_payload):
    site_payload["author_name"] = "Jane O'Hiker"
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    tables = services.db.tables
    assert tables["brand_guidelines"][0]["user_name"] == "acme"
    assert tables["brand_specifications"][0]["guideline_id"] == tables["brand_guidelines"][0]["id"]
    assert tables["brand_specifications"][0]["primary_color"] == "#000000"
    assert tables["company_information"][0]["email"] == "owner@acme.test"
    assert tables["authors"][0]["slug"] == "jane-o-hiker"
    assert resp.json()["notifications"]["brand_guidelines"] == {"status": "created", "action": "inserted"}


async def test_second_run_updates_instead_of_inserting(client, services, site_payload):
    await _provision(client, site_payload)
    site_payload["display_name"] = "Acme Trails"
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["brand_guidelines"]["action"] == "updated"
    assert len(services.db.tables["brand_guidelines"]) == 1
    assert len(services.db.tables["company_information"]) == 1
    assert services.db.tables["brand_guidelines"][0]["name"] == "Acme Trails"


async def test_brand_guidelines_failure_is_fatal(client, services, site_payload):
    services.db.fail_tables.add("brand_guidelines")
    resp = await _provision(client, site_payload)

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Failed to create brand guidelines"
    assert "rejected" in body["details"]
    assert not services.fly.calls
    assert not services.doubleclicker.payloads


async def test_other_seed_failures_are_swallowed(client, services, site_payload):
    services.db.fail_tables.update({"company_information", "authors"})
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    assert resp.json()["data"]["company_information"] is None
    assert resp.json()["notifications"]["fly"]["status"] == "deployed"


# --- Phase toggles ---

async def test_skip_deploy_makes_no_fly_call(client, services, site_payload):
    site_payload["skip_deploy"] = True
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    assert resp.json()["notifications"]["fly"] == {"status": "skipped", "reason": "skip_deploy=true"}
    assert services.fly.calls == []


async def test_skip_pipeline_skips_doubleclicker(client, services, site_payload):
    site_payload["skip_pipeline"] = True
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["doubleclicker"]["status"] == "skipped"
    assert services.doubleclicker.payloads == []


async def test_full_deploy_records_fly_details(client, services, site_payload):
    site_payload["fly_region"] = "lax"
    resp = await _provision(client, site_payload)
    body = resp.json()

    assert body["notifications"]["fly"] == {
        "status": "deployed",
        "app": "acme-blog",
        "url": "https://acme-blog.fly.dev",
        "ipv4": "66.241.124.10",
        "ipv6": "2a09:8280:1::1",
    }
    assert body["fly"]["app"] == "acme-blog"
    assert services.fly.names() == [
        "get_app_image", "create_app", "set_secrets", "allocate_ipv4", "allocate_ipv6", "create_machine",
    ]
    _, (app_name, image, env, region) = services.fly.calls[-1]
    assert region == "lax"
    assert env["NEXT_PUBLIC_SITE_URL"] == "https://acme.test"
    assert "dns_records" not in body


async def test_domain_skipped_when_fly_does_not_deploy(client, services, site_payload):
    site_payload["domain"] = "acme.com"
    services.fly.fail_on = "create_machine"
    resp = await _provision(client, site_payload)
    notifications = resp.json()["notifications"]

    assert resp.status_code == 200
    assert notifications["fly"]["status"] == "error"
    assert notifications["domain"] == {"status": "skipped", "reason": "Fly deployment did not succeed"}
    assert "add_certificate" not in services.fly.names()


async def test_fly_failure_after_app_creation_rolls_back(client, services, site_payload):
    services.fly.fail_on = "allocate_ipv6"
    resp = await _provision(client, site_payload)
    fly = resp.json()["notifications"]["fly"]

    assert fly["status"] == "error"
    assert fly["rolled_back"] is True
    assert services.fly.names()[-1] == "delete_app"
    assert resp.json()["fly"]["ipv4"] == ""


async def test_fly_failure_before_app_creation_deletes_nothing(client, services, site_payload):
    services.fly.fail_on = "create_app"
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["fly"]["rolled_back"] is False
    assert "delete_app" not in services.fly.names()


async def test_ga_failure_does_not_stop_later_phases(client, services, site_payload):
    site_payload.update({"domain": "acme.com", "setup_google_analytics": True, "setup_google_tag_manager": True})
    services.google.fail_on.add("create_ga4_property")
    resp = await _provision(client, site_payload)
    notifications = resp.json()["notifications"]

    assert resp.status_code == 200
    assert notifications["google_analytics"]["status"] == "error"
    assert notifications["google_tag_manager"]["status"] == "created"
    assert notifications["doubleclicker"]["status"] == "triggered"
    assert notifications["fly"]["status"] == "deployed"
    assert notifications["email"]["status"] == "sent"
    assert len(services.resend.sent) == 1


async def test_google_ids_are_passed_to_the_machine(client, services, site_payload):
    site_payload.update({"domain": "acme.com", "setup_google_analytics": True, "setup_google_tag_manager": True})
    resp = await _provision(client, site_payload)

    _, (_, _, env, _) = services.fly.calls[-3]  # create_machine precedes both certificates
    assert env["NEXT_PUBLIC_GA_MEASUREMENT_ID"] == "G-TEST123"
    assert env["NEXT_PUBLIC_GTM_ID"] == "GTM-TEST9"
    assert env["NEXT_PUBLIC_SITE_URL"] == "https://www.acme.com"
    assert resp.json()["google"]["measurement_id"] == "G-TEST123"
    ga_call = services.google.calls[0] if services.google.calls[0][0] == "create_ga4_property" else services.google.calls[1]
    assert ga_call[1][1] == "https://www.acme.com"


async def test_google_flag_without_credentials_is_skipped(client, services, site_payload, monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_SERVICE_ACCOUNT_JSON", "")
    site_payload["setup_google_analytics"] = True
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["google_analytics"] == {
        "status": "skipped",
        "reason": "GOOGLE_SERVICE_ACCOUNT_JSON not set",
    }
    assert services.google.calls == []


# --- Domain, DNS and email ---

async def test_dns_email_lists_records_in_order(client, services, site_payload):
    site_payload.update({"domain": "acme.com", "setup_search_console": True})
    resp = await _provision(client, site_payload)
    body = resp.json()

    assert [r["type"] for r in body["dns_records"]] == ["CNAME", "A", "AAAA", "TXT"]
    assert body["dns_records"][0] == {"type": "CNAME", "name": "www", "value": "acme-blog.fly.dev"}
    assert body["notifications"]["domain"]["status"] == "certificates_requested"
    assert body["notifications"]["search_console"]["status"] == "added"

    assert len(services.resend.sent) == 1
    email = services.resend.sent[0]
    assert email["to"] == ["owner@acme.test"]
    assert re.findall(r"<tr><td[^>]*>(\w+)</td>", email["html"]) == ["CNAME", "A", "AAAA", "TXT"]
    assert "verify-domain?username=acme&amp;domain=acme.com" in email["html"]
    assert body["notifications"]["email"] == {"status": "sent", "to": "owner@acme.test"}


async def test_certificates_requested_for_www_then_apex(client, services, site_payload):
    site_payload["domain"] = "acme.com"
    await _provision(client, site_payload)

    certs = [args[1] for name, args in services.fly.calls if name == "add_certificate"]
    assert certs == ["www.acme.com", "acme.com"]


async def test_email_skipped_without_resend_key(client, services, site_payload, monkeypatch):
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    site_payload["domain"] = "acme.com"
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["email"]["status"] == "skipped"
    assert services.resend.sent == []


async def test_rejected_email_is_recorded_as_failed(client, services, site_payload):
    services.resend.response = {"error": "domain not verified"}
    site_payload["domain"] = "acme.com"
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    assert resp.json()["notifications"]["email"] == {"status": "failed", "error": "domain not verified"}


async def test_domain_purchase_and_dns_auto_config(client, services, site_payload):
    site_payload.update({
        "domain": "acme.com",
        "purchase_domain": True,
        "domain_yearly_price": {"currencyCode": "USD", "units": "12"},
    })
    resp = await _provision(client, site_payload)
    notifications = resp.json()["notifications"]

    assert notifications["domain_purchase"] == {
        "status": "registration_pending",
        "domain": "acme.com",
        "operation_name": "operations/register-1",
    }
    assert notifications["dns_auto_config"]["status"] == "configured"
    _, (domain, records) = services.google.calls[-1]
    assert domain == "acme.com"
    assert [r["type"] for r in records] == ["CNAME", "A", "AAAA"]


async def test_dns_auto_config_keeps_fly_records_when_certificates_fail(client, services, site_payload):
    site_payload.update({
        "domain": "acme.com",
        "purchase_domain": True,
        "setup_search_console": True,
        "domain_yearly_price": {"currencyCode": "USD", "units": "12"},
    })
    services.fly.fail_on = "add_certificate"
    resp = await _provision(client, site_payload)
    notifications = resp.json()["notifications"]

    assert notifications["domain"]["status"] == "error"
    assert notifications["dns_auto_config"]["status"] == "configured"
    _, (_, records) = [c for c in services.google.calls if c[0] == "configure_domain_dns"][0]
    assert [r["type"] for r in records] == ["CNAME", "A", "AAAA", "TXT"]
    assert records[1]["value"] == "66.241.124.10"


async def test_domain_purchase_without_price_is_skipped(client, services, site_payload):
    site_payload.update({"domain": "acme.com", "purchase_domain": True})
    resp = await _provision(client, site_payload)
    notifications = resp.json()["notifications"]

    assert notifications["domain_purchase"] == {"status": "skipped", "reason": "domain_yearly_price not provided"}
    assert notifications["dns_auto_config"]["status"] == "skipped"
    assert "register_domain" not in services.google.names()


async def test_dns_auto_config_failure_is_deferred(client, services, site_payload):
    site_payload.update({
        "domain": "acme.com",
        "purchase_domain": True,
        "domain_yearly_price": {"currencyCode": "USD", "units": "12"},
    })
    services.google.fail_on.add("configure_domain_dns")
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    assert resp.json()["notifications"]["dns_auto_config"]["status"] == "deferred"
    assert resp.json()["notifications"]["email"]["status"] == "sent"


# --- Doubleclicker and audit ---

async def test_doubleclicker_failure_status_is_recorded(client, services, site_payload):
    services.doubleclicker.response = {"ok": False, "status_code": 422, "data": {"error": "bad niche"}}
    resp = await _provision(client, site_payload)

    assert resp.json()["notifications"]["doubleclicker"] == {
        "status": "failed",
        "statusCode": 422,
        "data": {"error": "bad niche"},
    }


async def test_doubleclicker_network_error_is_recorded(client, services, site_payload):
    services.doubleclicker.error = RuntimeError("Doubleclicker request failed: connection refused")
    resp = await _provision(client, site_payload)

    assert resp.status_code == 200
    assert resp.json()["notifications"]["doubleclicker"]["status"] == "error"
    assert resp.json()["notifications"]["fly"]["status"] == "deployed"


async def test_event_is_logged_with_notifications(client, services, site_payload):
    await _provision(client, site_payload)

    event = services.db.tables["analytics_events"][0]
    assert event["event_name"] == "site_provisioned"
    assert event["properties"]["fly_app"] == "acme-blog"
    assert event["properties"]["notifications"]["fly"]["status"] == "deployed"


async def test_audit_failure_is_ignored(client, services, site_payload):
    services.db.fail_tables.add("analytics_events")
    resp = await _provision(client, site_payload)
    assert resp.status_code == 200
    assert resp.json()["success"] is True


async def test_status_reports_integrations_without_secrets(client, services):
    resp = await client.get("/status")
    body = resp.json()

    assert resp.status_code == 200
    assert body["integrations"]["fly"] is True
    assert body["integrations"]["supabase"] is True
    assert SECRET not in resp.text
