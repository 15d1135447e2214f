"""
Google API integrations for automated provisioning.

All management APIs authenticate with a GCP service account. Set up:

    GOOGLE_SERVICE_ACCOUNT_JSON   - Full JSON key file contents (from GCP IAM)
    GOOGLE_CLOUD_PROJECT          - GCP project ID (Cloud Domains + Cloud DNS)
    GOOGLE_ANALYTICS_ACCOUNT_ID   - GA4 account ID (GA Admin -> Account Settings)
    GOOGLE_TAG_MANAGER_ACCOUNT_ID - GTM account ID (GTM Admin -> Account Settings)

Service account permissions needed:
    - GA4 / GTM: service account email added as Editor on the account
    - Search Console: service account becomes verified owner via the API
    - Cloud Domains / Cloud DNS: roles/domains.admin and roles/dns.admin
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

import config


SCOPES = [
    "https://www.googleapis.com/auth/analytics.edit",
    "https://www.googleapis.com/auth/tagmanager.edit.containers",
    "https://www.googleapis.com/auth/tagmanager.readonly",
    "https://www.googleapis.com/auth/webmasters",
    "https://www.googleapis.com/auth/siteverification",
    "https://www.googleapis.com/auth/cloud-platform",
]

ANALYTICS_ADMIN_API = "https://analyticsadmin.googleapis.com/v1alpha"
TAG_MANAGER_API = "https://tagmanager.googleapis.com/tagmanager/v2"
SITE_VERIFICATION_API = "https://www.googleapis.com/siteVerification/v1"
WEBMASTERS_API = "https://www.googleapis.com/webmasters/v3"
CLOUD_DOMAINS_API = "https://domains.googleapis.com/v1"
CLOUD_DNS_API = "https://dns.googleapis.com/dns/v1"

DNS_TTL = 300


def is_google_configured() -> bool:
    """Returns True if service account credentials are configured."""
    return bool(getattr(config, "GOOGLE_SERVICE_ACCOUNT_JSON", None))


def zone_name_for(domain: str) -> str:
    """Cloud DNS zone names must start with a letter and use only [-a-z0-9]."""
    return "site-" + domain.lower().replace(".", "-")


def _fqdn(domain: str, name: str) -> str:
    if name in ("@", ""):
        return f"{domain}."
    return f"{name}.{domain}."


def _rrdata(record_type: str, value: str) -> str:
    if record_type == "TXT":
        return f'"{value}"'
    if record_type == "CNAME" and not value.endswith("."):
        return f"{value}."
    return value


class GoogleClient:
    """Thin wrapper over the Google management REST APIs using a service account session."""

    def __init__(self, service_account_json: Optional[str] = None, timeout: int = 30) -> None:
        key_json = service_account_json or getattr(config, "GOOGLE_SERVICE_ACCOUNT_JSON", None)
        if not key_json:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON not configured")

        credentials = service_account.Credentials.from_service_account_info(
            json.loads(key_json), scopes=SCOPES
        )
        self.session = AuthorizedSession(credentials)
        self.timeout = timeout

    def _fetch(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RuntimeError(f"Google API request failed: {exc}") from exc

        if not resp.ok:
            try:
                message = resp.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise RuntimeError(f"Google API error ({resp.status_code}): {message or resp.reason}")

        # Some endpoints (e.g. Search Console sites.add) return an empty 204
        return resp.json() if resp.text else {}

    def _project_location(self) -> str:
        project = getattr(config, "GOOGLE_CLOUD_PROJECT", None)
        if not project:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT not configured")
        return f"projects/{project}/locations/global"

    # -------------------- Google Analytics 4 -------------------- #
    def create_ga4_property(
        self,
        display_name: str,
        site_url: str,
        time_zone: str = "America/New_York",
    ) -> Dict[str, Any]:
        """
        Create a GA4 property plus a web data stream for the site.

        Returns the measurement ID (G-XXXXXXX) to embed in the site.
        """
        account_id = getattr(config, "GOOGLE_ANALYTICS_ACCOUNT_ID", None)
        if not account_id:
            raise RuntimeError("GOOGLE_ANALYTICS_ACCOUNT_ID not configured")

        prop = self._fetch(
            "POST",
            f"{ANALYTICS_ADMIN_API}/properties",
            {
                "parent": f"accounts/{account_id}",
                "displayName": display_name,
                "timeZone": time_zone,
                "currencyCode": "USD",
            },
        )
        stream = self._fetch(
            "POST",
            f"{ANALYTICS_ADMIN_API}/{prop['name']}/dataStreams",
            {
                "type": "WEB_DATA_STREAM",
                "displayName": f"{display_name} Web",
                "webStreamData": {"defaultUri": site_url},
            },
        )

        return {
            "property_id": prop["name"].split("/")[1],
            "property_name": prop["name"],
            "measurement_id": (stream.get("webStreamData") or {}).get("measurementId"),
            "stream_name": stream.get("name"),
        }

    # -------------------- Google Tag Manager -------------------- #
    def create_gtm_container(self, container_name: str) -> Dict[str, Any]:
        """Create a GTM web container. Returns the public ID (GTM-XXXXXXX)."""
        account_id = getattr(config, "GOOGLE_TAG_MANAGER_ACCOUNT_ID", None)
        if not account_id:
            raise RuntimeError("GOOGLE_TAG_MANAGER_ACCOUNT_ID not configured")

        container = self._fetch(
            "POST",
            f"{TAG_MANAGER_API}/accounts/{account_id}/containers",
            {"name": container_name, "usageContext": ["web"]},
        )
        return {
            "container_id": container.get("containerId"),
            "public_id": container.get("publicId"),
            "path": container.get("path"),
        }

    # -------------------- Search Console -------------------- #
    def add_search_console_site(self, site_url: str) -> Dict[str, Any]:
        """
        Request a DNS TXT verification token and add the site to Search Console.

        The token belongs on the domain root as a TXT record. Adding the site
        fails until verification completes, which is tolerated here.
        """
        token_data = self._fetch(
            "POST",
            f"{SITE_VERIFICATION_API}/token",
            {
                "site": {"type": "SITE", "identifier": site_url},
                "verificationMethod": "DNS_TXT",
            },
        )

        try:
            self._fetch("PUT", f"{WEBMASTERS_API}/sites/{quote(site_url, safe='')}")
        except RuntimeError:
            pass  # succeeds once the TXT record verifies

        return {
            "site_url": site_url,
            "verification_token": token_data.get("token"),
            "verification_method": "DNS_TXT",
        }

    # -------------------- Cloud Domains -------------------- #
    def register_domain(
        self,
        domain_name: str,
        contact_email: str,
        yearly_price: Dict[str, Any],
        domain_notices: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Purchase a domain via Cloud Domains, charged to the project's billing account.

        Returns the long-running operation; the domain becomes ACTIVE within minutes.
        """
        location = self._project_location()
        contact = {"email": contact_email, "postalAddress": {"regionCode": "US"}}

        result = self._fetch(
            "POST",
            f"{CLOUD_DOMAINS_API}/{location}/registrations:register",
            {
                "registration": {
                    "domainName": domain_name,
                    "contactSettings": {
                        "privacy": "REDACTED_CONTACT_DATA",
                        "registrantContact": contact,
                        "adminContact": contact,
                        "technicalContact": contact,
                    },
                },
                "yearlyPrice": yearly_price,
                "domainNotices": domain_notices or [],
            },
        )
        return {
            "domain_name": domain_name,
            "operation_name": result.get("name"),
            "status": "REGISTRATION_PENDING",
        }

    def configure_domain_dns(self, domain: str, records: List[Dict[str, str]]) -> Dict[str, Any]:
        """
        Host the domain's DNS in a Cloud DNS zone and point the registration at it.

        Creates a public managed zone, writes one record set per (name, type)
        and switches the Cloud Domains registration to the zone's name servers.
        """
        location = self._project_location()
        project = location.split("/")[1]
        zone_name = zone_name_for(domain)

        zone = self._fetch(
            "POST",
            f"{CLOUD_DNS_API}/projects/{project}/managedZones",
            {
                "name": zone_name,
                "dnsName": f"{domain}.",
                "description": f"Provisioned zone for {domain}",
                "visibility": "public",
            },
        )

        rrsets: Dict[tuple, Dict[str, Any]] = {}
        for record in records:
            key = (_fqdn(domain, record["name"]), record["type"])
            rrset = rrsets.setdefault(
                key, {"name": key[0], "type": record["type"], "ttl": DNS_TTL, "rrdatas": []}
            )
            rrset["rrdatas"].append(_rrdata(record["type"], record["value"]))

        self._fetch(
            "POST",
            f"{CLOUD_DNS_API}/projects/{project}/managedZones/{zone_name}/changes",
            {"additions": list(rrsets.values())},
        )

        name_servers = zone.get("nameServers", [])
        self._fetch(
            "POST",
            f"{CLOUD_DOMAINS_API}/{location}/registrations/{domain}:configureDnsSettings",
            {
                "dnsSettings": {"customDns": {"nameServers": name_servers}},
                "updateMask": "custom_dns",
            },
        )

        return {"zone": zone_name, "name_servers": name_servers, "records": len(records)}
