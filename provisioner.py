"""
Fully automated site provisioning.

One call does everything for a new tenant blog:
    1. Seeds brand data into the shared Supabase DB
    2. Creates Google Analytics / Tag Manager properties (optional)
    3. Notifies Doubleclicker to start the content pipeline
    4. Deploys a new Fly.io app with the tenant's env vars
    5. Purchases the domain through Cloud Domains (optional)
    6. Requests TLS certificates for the custom domain
    7. Registers the site with Search Console (optional)
    8. Points a freshly purchased domain at the app automatically
    9. Emails the user the DNS records to configure
   10. Logs the event

Each phase records its own outcome in the notifications map. Only the
brand_guidelines write is fatal; every other failure is recorded and the
remaining phases still run.
"""

import asyncio
import functools
import logging
import re
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

import config
from clients.doubleclicker_client import DoubleclickerClient
from clients.fly_client import FlyClient
from clients.google_client import GoogleClient, is_google_configured
from clients.resend_client import ResendClient
from clients.supabase_client import SupabaseClient
from email_templates import dns_setup_subject, render_dns_setup_email

logger = logging.getLogger(__name__)


# ------------------------------
# Request model
# ------------------------------

class ApprovedProduct(BaseModel):
    url: str
    name: Optional[str] = None


class NetworkPartner(BaseModel):
    domain: str
    niche: Optional[str] = None
    display_name: Optional[str] = None


class YearlyPrice(BaseModel):
    currencyCode: str
    units: str
    nanos: Optional[int] = None


class ProvisionRequest(BaseModel):
    username: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    contact_email: str = Field(..., min_length=1)
    website_url: Optional[str] = None
    niche: Optional[str] = None

    domain: Optional[str] = None
    blurb: Optional[str] = None
    target_market: Optional[str] = None
    brand_voice_tone: Optional[str] = None
    primary_color: Optional[str] = None
    accent_color: Optional[str] = None
    logo_url: Optional[str] = None
    heading_font: Optional[str] = None
    body_font: Optional[str] = None
    author_name: Optional[str] = None
    author_bio: Optional[str] = None
    author_image_url: Optional[str] = None

    product_url: Optional[str] = None
    approved_products: List[ApprovedProduct] = Field(default_factory=list)
    approved_keywords: List[str] = Field(default_factory=list)
    network_partners: List[NetworkPartner] = Field(default_factory=list)

    fly_region: str = "syd"
    time_zone: str = "America/New_York"
    skip_pipeline: bool = False
    skip_deploy: bool = False
    setup_google_analytics: bool = False
    setup_google_tag_manager: bool = False
    setup_search_console: bool = False
    purchase_domain: bool = False
    domain_yearly_price: Optional[YearlyPrice] = None
    domain_notices: List[str] = Field(default_factory=list)

    @field_validator("approved_products", mode="before")
    @classmethod
    def _products_from_urls(cls, value):
        if isinstance(value, list):
            return [{"url": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("domain", mode="before")
    @classmethod
    def _normalize_domain(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value.startswith("www."):
                value = value[4:]
            return value or None
        return value

    @model_validator(mode="after")
    def _require_site_source(self):
        if not self.website_url and not self.niche:
            raise ValueError("Missing required field: website_url or niche")
        return self


def describe_validation_error(exc: ValidationError) -> str:
    """Collapse pydantic errors into one short message for the 400 response."""
    missing: List[str] = []
    other: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        if error.get("type") in ("missing", "string_too_short"):
            missing.append(location)
        else:
            message = error.get("msg", "invalid value").removeprefix("Value error, ")
            other.append(f"{location}: {message}" if location else message)

    parts = []
    if missing:
        parts.append("Missing required fields: " + ", ".join(missing))
    parts.extend(other)
    return "; ".join(parts)


# ------------------------------
# Per-request accumulator
# ------------------------------

class FatalPhaseError(Exception):
    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass
class ProvisionRun:
    request: ProvisionRequest
    supabase: SupabaseClient
    results: Dict[str, Any] = field(default_factory=dict)
    notifications: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    dns_records: List[Dict[str, str]] = field(default_factory=list)
    fly_ipv4: str = ""
    fly_ipv6: str = ""
    ga_measurement_id: Optional[str] = None
    gtm_public_id: Optional[str] = None
    search_console_token: Optional[str] = None

    @property
    def fly_app_name(self) -> str:
        return f"{self.request.username}-blog"

    @property
    def fly_url(self) -> str:
        return f"https://{self.fly_app_name}.fly.dev"

    @property
    def site_url(self) -> str:
        if self.request.domain:
            return f"https://www.{self.request.domain}"
        return self.request.website_url or self.fly_url

    def record(self, key: str, status: str, **fields: Any) -> None:
        self.notifications[key] = {"status": status, **fields}

    def status_of(self, key: str) -> Optional[str]:
        return (self.notifications.get(key) or {}).get("status")

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "success": True,
            "message": f"Site provisioned for {self.request.username}",
            "data": self.results,
            "notifications": self.notifications,
            "fly": {
                "app": self.fly_app_name,
                "url": self.fly_url,
                "ipv4": self.fly_ipv4,
                "ipv6": self.fly_ipv6,
            },
            "google": {
                "measurement_id": self.ga_measurement_id,
                "gtm_id": self.gtm_public_id,
                "search_console_token": self.search_console_token,
            },
        }
        if self.dns_records:
            response["dns_records"] = self.dns_records
        return response


@dataclass(frozen=True)
class Phase:
    name: str
    run: Callable[[ProvisionRun], Awaitable[None]]
    notification_key: Optional[str] = None
    fatal: bool = False


async def _blocking(fn: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking client call in the default executor."""
    return await asyncio.get_event_loop().run_in_executor(None, functools.partial(fn, *args))


def author_slug(name: str) -> str:
    return re.sub(r"(^-|-$)", "", re.sub(r"[^a-z0-9]+", "-", name.lower()))


def fly_dns_records(app_name: str, ipv4: str, ipv6: str) -> List[Dict[str, str]]:
    return [
        {"type": "CNAME", "name": "www", "value": f"{app_name}.fly.dev"},
        {"type": "A", "name": "@", "value": ipv4},
        {"type": "AAAA", "name": "@", "value": ipv6},
    ]


# ------------------------------
# Phase 1: seed the shared database
# ------------------------------

async def _seed_optional(
    db: SupabaseClient,
    table: str,
    payload: Dict[str, Any],
    match: Dict[str, Any],
    update_by_id: bool = False,
) -> Optional[List[Dict[str, Any]]]:
    try:
        data, action = await _blocking(db.upsert_by_keys, table, payload, match, update_by_id)
        logger.info("[PROVISION] %s %s for %s", table, action, match)
        return data
    except Exception as exc:
        logger.error("[PROVISION] Error saving %s: %s", table, exc)
        return None


async def seed_brand_data(run: ProvisionRun) -> None:
    req = run.request
    db = run.supabase

    guidelines_payload = {
        "user_name": req.username,
        "name": req.display_name,
        "website_url": req.website_url or run.site_url,
        "brand_personality": req.brand_voice_tone,
        "default_author": req.author_name or req.display_name,
        "author_bio": req.author_bio,
        "author_image_url": req.author_image_url,
    }
    try:
        guidelines, action = await _blocking(
            db.upsert_by_keys, "brand_guidelines", guidelines_payload, {"user_name": req.username}
        )
    except Exception as exc:
        logger.error("[PROVISION] Error saving brand_guidelines: %s", exc)
        raise FatalPhaseError("Failed to create brand guidelines", details=str(exc)) from exc

    run.results["brand_guidelines"] = guidelines
    run.record("brand_guidelines", "created", action=action)

    if guidelines and guidelines[0].get("id"):
        specs_payload = {
            "guideline_id": guidelines[0]["id"],
            "user_name": req.username,
            "primary_color": req.primary_color or "#000000",
            "accent_color": req.accent_color or "#ffffff",
            "secondary_color": req.accent_color or "#ffffff",
            "logo_url": req.logo_url,
            "heading_font": req.heading_font,
            "body_font": req.body_font,
        }
        run.results["brand_specifications"] = await _seed_optional(
            db, "brand_specifications", specs_payload, {"user_name": req.username}
        )

    company_payload = {
        "username": req.username,
        "client_website": req.website_url or run.site_url,
        "email": req.contact_email,
        "blurb": req.blurb,
        "target_market": req.target_market,
    }
    run.results["company_information"] = await _seed_optional(
        db, "company_information", company_payload, {"username": req.username}
    )

    author_name = req.author_name or req.display_name
    slug = author_slug(author_name)
    author_payload = {
        "user_name": req.username,
        "name": author_name,
        "bio": req.author_bio or f"Author at {req.display_name}",
        "profile_image_url": req.author_image_url,
        "slug": slug,
    }
    run.results["author"] = await _seed_optional(
        db, "authors", author_payload, {"user_name": req.username, "slug": slug}, update_by_id=True
    )


# ------------------------------
# Phase 2: Google Analytics + Tag Manager
# ------------------------------

async def create_google_services(run: ProvisionRun) -> None:
    req = run.request
    configured = is_google_configured()

    async def _analytics() -> None:
        if not req.setup_google_analytics:
            run.record("google_analytics", "skipped", reason="setup_google_analytics=false")
            return
        if not configured:
            run.record("google_analytics", "skipped", reason="GOOGLE_SERVICE_ACCOUNT_JSON not set")
            return
        try:
            google = GoogleClient()
            ga = await _blocking(google.create_ga4_property, req.display_name, run.site_url, req.time_zone)
            run.ga_measurement_id = ga.get("measurement_id")
            run.record(
                "google_analytics",
                "created",
                measurement_id=ga.get("measurement_id"),
                property_id=ga.get("property_id"),
            )
            logger.info("[PROVISION] GA4 property created: %s", ga.get("measurement_id"))
        except Exception as exc:
            logger.error("[PROVISION] Error creating GA4 property: %s", exc)
            run.record("google_analytics", "error", error=str(exc))

    async def _tag_manager() -> None:
        if not req.setup_google_tag_manager:
            run.record("google_tag_manager", "skipped", reason="setup_google_tag_manager=false")
            return
        if not configured:
            run.record("google_tag_manager", "skipped", reason="GOOGLE_SERVICE_ACCOUNT_JSON not set")
            return
        try:
            google = GoogleClient()
            gtm = await _blocking(google.create_gtm_container, req.display_name)
            run.gtm_public_id = gtm.get("public_id")
            run.record(
                "google_tag_manager",
                "created",
                public_id=gtm.get("public_id"),
                container_id=gtm.get("container_id"),
            )
            logger.info("[PROVISION] GTM container created: %s", gtm.get("public_id"))
        except Exception as exc:
            logger.error("[PROVISION] Error creating GTM container: %s", exc)
            run.record("google_tag_manager", "error", error=str(exc))

    await asyncio.gather(_analytics(), _tag_manager())


# ------------------------------
# Phase 3: notify Doubleclicker
# ------------------------------

def build_onboard_payload(req: ProvisionRequest, website_url: str) -> Dict[str, Any]:
    """
    Payload for Doubleclicker's auto-onboard endpoint.

    The first approved product becomes the primary product; the rest are
    passed as additional URLs for knowledge-base scraping.
    """
    payload: Dict[str, Any] = {
        "username": req.username,
        "displayName": req.display_name,
        "websiteUrl": website_url,
        "assignToEmail": req.contact_email,
    }

    if req.approved_products:
        primary, *rest = req.approved_products
        payload["productUrl"] = primary.url
        if primary.name:
            payload["productName"] = primary.name
        additional = [product.url for product in rest]
        if additional:
            payload["additionalUrls"] = additional
    elif req.product_url:
        payload["productUrl"] = req.product_url

    if req.niche:
        payload["niche"] = req.niche
    if req.approved_keywords:
        payload["approvedKeywords"] = req.approved_keywords
    if req.network_partners:
        payload["networkPartners"] = [p.model_dump(exclude_none=True) for p in req.network_partners]

    return payload


async def notify_doubleclicker(run: ProvisionRun) -> None:
    req = run.request
    base_url = getattr(config, "DOUBLECLICKER_API_URL", None)
    if req.skip_pipeline or not base_url:
        run.record(
            "doubleclicker",
            "skipped",
            reason="DOUBLECLICKER_API_URL not set" if not base_url else "skip_pipeline=true",
        )
        return

    client = DoubleclickerClient()
    payload = build_onboard_payload(req, req.website_url or run.site_url)
    result = await _blocking(client.auto_onboard, payload)
    run.record(
        "doubleclicker",
        "triggered" if result["ok"] else "failed",
        statusCode=result["status_code"],
        data=result["data"],
    )
    logger.info("[PROVISION] Doubleclicker responded %s for %s", result["status_code"], req.username)


# ------------------------------
# Phase 4: deploy to Fly.io
# ------------------------------

async def _rollback_fly_app(fly: FlyClient, app_name: str) -> bool:
    try:
        await _blocking(fly.delete_app, app_name)
        logger.info("[FLY] Rolled back app %s", app_name)
        return True
    except Exception as exc:
        logger.error("[FLY] Could not roll back app %s: %s", app_name, exc)
        return False


async def deploy_fly_app(run: ProvisionRun) -> None:
    req = run.request
    token = getattr(config, "FLY_API_TOKEN", None)
    if req.skip_deploy or not token:
        run.record(
            "fly",
            "skipped",
            reason="FLY_API_TOKEN not set" if not token else "skip_deploy=true",
        )
        return

    app_name = run.fly_app_name
    base_app = getattr(config, "FLY_BASE_APP", None) or "doubledoubleclickclick"
    org_slug = getattr(config, "FLY_ORG_SLUG", None) or "personal"
    fly = FlyClient()
    app_created = False

    try:
        image_ref = await _blocking(fly.get_app_image, base_app)
        logger.info("[FLY] Using image from %s: %s", base_app, image_ref)

        await _blocking(fly.create_app, app_name, org_slug)
        app_created = True
        logger.info("[FLY] Created app: %s", app_name)

        await _blocking(
            fly.set_secrets,
            app_name,
            {
                "NEXT_PUBLIC_SUPABASE_URL": run.supabase.url,
                "NEXT_PUBLIC_SUPABASE_ANON_KEY": getattr(config, "NEXT_PUBLIC_SUPABASE_ANON_KEY", "") or "",
                "SUPABASE_SERVICE_ROLE_KEY": run.supabase.service_role_key,
                "RESEND_API_KEY": getattr(config, "RESEND_API_KEY", "") or "",
            },
        )
        logger.info("[FLY] Set secrets on %s", app_name)

        run.fly_ipv4 = await _blocking(fly.allocate_ipv4, app_name)
        run.fly_ipv6 = await _blocking(fly.allocate_ipv6, app_name)
        logger.info("[FLY] Allocated IPs: %s / %s", run.fly_ipv4, run.fly_ipv6)

        env = {
            "NEXT_PUBLIC_BRAND_USERNAME": req.username,
            "NEXT_PUBLIC_SITE_URL": run.site_url,
            "NEXT_PUBLIC_SITE_NAME": req.display_name,
            "NEXT_PUBLIC_CONTACT_EMAIL": req.contact_email,
        }
        if run.ga_measurement_id:
            env["NEXT_PUBLIC_GA_MEASUREMENT_ID"] = run.ga_measurement_id
        if run.gtm_public_id:
            env["NEXT_PUBLIC_GTM_ID"] = run.gtm_public_id

        await _blocking(fly.create_machine, app_name, image_ref, env, req.fly_region)
        logger.info("[FLY] Machine created in %s (%s)", app_name, req.fly_region)

        run.record(
            "fly",
            "deployed",
            app=app_name,
            url=run.fly_url,
            ipv4=run.fly_ipv4,
            ipv6=run.fly_ipv6,
        )
    except Exception as exc:
        logger.error("[FLY] Error deploying %s: %s", app_name, exc)
        rolled_back = False
        if app_created:
            rolled_back = await _rollback_fly_app(fly, app_name)
            if rolled_back:
                run.fly_ipv4 = ""
                run.fly_ipv6 = ""
        run.record("fly", "error", error=str(exc), rolled_back=rolled_back)


# ------------------------------
# Phase 5: purchase the domain
# ------------------------------

async def purchase_domain(run: ProvisionRun) -> None:
    req = run.request
    if not req.purchase_domain:
        reason = "purchase_domain=false"
    elif not req.domain:
        reason = "domain not provided"
    elif not req.domain_yearly_price:
        reason = "domain_yearly_price not provided"
    elif not is_google_configured():
        reason = "GOOGLE_SERVICE_ACCOUNT_JSON not set"
    else:
        reason = None

    if reason:
        run.record("domain_purchase", "skipped", reason=reason)
        return

    google = GoogleClient()
    registration = await _blocking(
        google.register_domain,
        req.domain,
        req.contact_email,
        req.domain_yearly_price.model_dump(exclude_none=True),
        req.domain_notices,
    )
    run.record(
        "domain_purchase",
        "registration_pending",
        domain=req.domain,
        operation_name=registration.get("operation_name"),
    )
    logger.info("[PROVISION] Domain registration pending: %s", req.domain)


# ------------------------------
# Phase 6: custom domain + TLS
# ------------------------------

async def add_custom_domain(run: ProvisionRun) -> None:
    req = run.request
    if not req.domain:
        return
    if run.status_of("fly") != "deployed":
        run.record("domain", "skipped", reason="Fly deployment did not succeed")
        return

    fly = FlyClient()
    www_cert = await _blocking(fly.add_certificate, run.fly_app_name, f"www.{req.domain}")
    apex_cert = await _blocking(fly.add_certificate, run.fly_app_name, req.domain)

    run.dns_records.extend(fly_dns_records(run.fly_app_name, run.fly_ipv4, run.fly_ipv6))
    run.record(
        "domain",
        "certificates_requested",
        domain=req.domain,
        www_cert=www_cert,
        apex_cert=apex_cert,
        dns_records=list(run.dns_records),
    )
    logger.info("[PROVISION] Certificates requested for %s", req.domain)


# ------------------------------
# Phase 7: Search Console
# ------------------------------

async def register_search_console(run: ProvisionRun) -> None:
    req = run.request
    if not req.setup_search_console:
        run.record("search_console", "skipped", reason="setup_search_console=false")
        return
    if not is_google_configured():
        run.record("search_console", "skipped", reason="GOOGLE_SERVICE_ACCOUNT_JSON not set")
        return

    google = GoogleClient()
    site = await _blocking(google.add_search_console_site, run.site_url)
    token = site.get("verification_token")
    if token:
        run.search_console_token = token
        run.dns_records.append({"type": "TXT", "name": "@", "value": token})

    run.record("search_console", "added", site_url=run.site_url, verification_token=token)


# ------------------------------
# Phase 8: automatic DNS for purchased domains
# ------------------------------

async def auto_configure_dns(run: ProvisionRun) -> None:
    req = run.request
    if run.status_of("domain_purchase") != "registration_pending":
        run.record("dns_auto_config", "skipped", reason="domain was not purchased")
        return
    if not (run.fly_ipv4 and run.fly_ipv6):
        run.record("dns_auto_config", "skipped", reason="Fly IP addresses not allocated")
        return

    # Fly records always go in, whether or not the domain phase ran
    records = fly_dns_records(run.fly_app_name, run.fly_ipv4, run.fly_ipv6)
    records.extend(r for r in run.dns_records if r["type"] == "TXT" and r not in records)
    try:
        google = GoogleClient()
        result = await _blocking(google.configure_domain_dns, req.domain, records)
        run.record(
            "dns_auto_config",
            "configured",
            zone=result.get("zone"),
            name_servers=result.get("name_servers"),
        )
    except Exception as exc:
        # A domain bought seconds ago is usually not ACTIVE yet
        logger.warning("[PROVISION] DNS auto-config deferred for %s: %s", req.domain, exc)
        run.record("dns_auto_config", "deferred", error=str(exc))


# ------------------------------
# Phase 9: email DNS records
# ------------------------------

def verify_domain_url(run: ProvisionRun, domain: str) -> str:
    query = urlencode({"username": run.request.username, "domain": domain})
    return f"{run.fly_url}/api/provision/verify-domain?{query}"


async def email_dns_records(run: ProvisionRun) -> None:
    req = run.request
    if not run.dns_records:
        run.record("email", "skipped", reason="no DNS records to send")
        return
    if not getattr(config, "RESEND_API_KEY", None):
        run.record("email", "skipped", reason="RESEND_API_KEY not set")
        return

    domain = req.domain or urlparse(run.site_url).hostname or run.site_url
    html = render_dns_setup_email(
        display_name=req.display_name,
        domain=domain,
        fly_url=run.fly_url,
        verify_url=verify_domain_url(run, domain),
        dns_records=run.dns_records,
    )

    resend = ResendClient()
    result = await _blocking(resend.send_email, [req.contact_email], dns_setup_subject(domain), html)
    if result.get("error"):
        run.record("email", "failed", error=result["error"])
    else:
        run.record("email", "sent", to=req.contact_email)


# ------------------------------
# Phase 10: audit log
# ------------------------------

async def log_provision_event(run: ProvisionRun) -> None:
    req = run.request
    try:
        await _blocking(
            run.supabase.insert_row,
            "analytics_events",
            {
                "event_name": "site_provisioned",
                "properties": {
                    "username": req.username,
                    "display_name": req.display_name,
                    "website_url": req.website_url,
                    "domain": req.domain,
                    "fly_app": run.fly_app_name,
                    "notifications": run.notifications,
                },
            },
        )
    except Exception as exc:
        logger.warning("[PROVISION] Could not log provisioning event: %s", exc)


PHASES: List[Phase] = [
    Phase("seed", seed_brand_data, fatal=True),
    Phase("google", create_google_services),
    Phase("doubleclicker", notify_doubleclicker, notification_key="doubleclicker"),
    Phase("fly", deploy_fly_app, notification_key="fly"),
    Phase("domain_purchase", purchase_domain, notification_key="domain_purchase"),
    Phase("domain", add_custom_domain, notification_key="domain"),
    Phase("search_console", register_search_console, notification_key="search_console"),
    Phase("dns_auto_config", auto_configure_dns, notification_key="dns_auto_config"),
    Phase("email", email_dns_records, notification_key="email"),
    Phase("audit", log_provision_event),
]


async def run_phases(run: ProvisionRun, phases: Optional[List[Phase]] = None) -> ProvisionRun:
    for phase in phases if phases is not None else PHASES:
        try:
            await phase.run(run)
        except FatalPhaseError:
            raise
        except Exception as exc:
            if phase.fatal:
                raise FatalPhaseError(f"Phase {phase.name} failed", details=str(exc)) from exc
            logger.error("[PROVISION] Phase %s failed for %s: %s", phase.name, run.request.username, exc)
            if phase.notification_key:
                run.record(phase.notification_key, "error", error=str(exc))
    return run


# ------------------------------
# Entry point
# ------------------------------

# One lock per username, dropped once no run holds it
_username_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(username: str) -> asyncio.Lock:
    lock = _username_locks.get(username)
    if lock is None:
        lock = asyncio.Lock()
        _username_locks[username] = lock
    return lock


async def provision_site(request: ProvisionRequest, supabase: SupabaseClient) -> ProvisionRun:
    run = ProvisionRun(request=request, supabase=supabase)
    lock = _lock_for(request.username)
    async with lock:
        logger.info("[PROVISION] Starting provisioning for %s", request.username)
        await run_phases(run)
        logger.info("[PROVISION] Finished provisioning for %s: %s", request.username, {
            key: value.get("status") for key, value in run.notifications.items()
        })
    return run


async def provision_from_payload(payload: Any) -> Tuple[int, Dict[str, Any]]:
    """
    Validate a raw payload and run every phase.

    Returns (http_status, body). Authorization is checked by the caller.
    """
    if not isinstance(payload, dict):
        return 400, {"success": False, "error": "Request body must be a JSON object"}

    try:
        request = ProvisionRequest.model_validate(payload)
    except ValidationError as exc:
        return 400, {"success": False, "error": describe_validation_error(exc)}

    if not getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None) or not getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None):
        return 500, {"success": False, "error": "Database not configured"}

    try:
        supabase = SupabaseClient()
        run = await provision_site(request, supabase)
    except FatalPhaseError as exc:
        return 500, {"success": False, "error": exc.message, "details": exc.details}
    except Exception as exc:
        logger.exception("[PROVISION] Provision error for %s: %s", request.username, exc)
        return 500, {"success": False, "error": "Internal server error"}

    return 200, run.to_response()
