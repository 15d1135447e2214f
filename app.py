import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

import config
from clients.google_client import is_google_configured
from domain_suggestions import suggest_domains
from domain_verifier import verify_domain
from network_provisioner import get_network_status, provision_network
from provisioner import describe_validation_error, provision_from_payload

logging.basicConfig(
    level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("app")

STARTED_AT = datetime.now(timezone.utc)


# ------------------------------
# Request models
# ------------------------------

class DomainSuggestionRequest(BaseModel):
    niche: Optional[str] = None
    brand_name: Optional[str] = None


# ------------------------------
# Helpers
# ------------------------------

def _json(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


def check_provision_auth(request: Request) -> Optional[JSONResponse]:
    """Bearer check against PROVISION_SECRET. Returns an error response or None."""
    provision_secret = getattr(config, "PROVISION_SECRET", None)
    if not provision_secret:
        return _json(500, {"success": False, "error": "Provisioning not configured"})

    auth_header = request.headers.get("authorization")
    if not auth_header or auth_header != f"Bearer {provision_secret}":
        return _json(401, {"success": False, "error": "Unauthorized"})

    return None


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


# ------------------------------
# FastAPI app
# ------------------------------

app = FastAPI(title="Doubleclicker site provisioning")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Local development
        "http://127.0.0.1:3000",  # Local development alternative
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.post("/api/provision")
async def provision_endpoint(request: Request):
    """Provision a new tenant site. Protected by the PROVISION_SECRET bearer token."""
    auth_error = check_provision_auth(request)
    if auth_error:
        return auth_error

    payload = await _read_json(request)
    if payload is None:
        return _json(400, {"success": False, "error": "Invalid JSON body"})

    status_code, body = await provision_from_payload(payload)
    return _json(status_code, body)


@app.get("/api/provision/verify-domain")
async def verify_domain_endpoint(username: Optional[str] = None, domain: Optional[str] = None):
    """Check DNS + certificate status. Linked from the DNS setup email."""
    status_code, body = await verify_domain(username, domain)
    return _json(status_code, body)


@app.post("/api/admin/provision-network")
async def provision_network_endpoint(request: Request):
    auth_error = check_provision_auth(request)
    if auth_error:
        return auth_error

    payload = await _read_json(request)
    if payload is None:
        return _json(400, {"success": False, "error": "Invalid JSON body"})

    try:
        status_code, body = await provision_network(payload)
    except Exception as exc:  # noqa: BLE001
        logger.exception("[NETWORK] provision-network error: %s", exc)
        return _json(500, {"success": False, "error": str(exc)})
    return _json(status_code, body)


@app.get("/api/admin/provision-network")
async def network_status_endpoint(request: Request, network_id: Optional[str] = None):
    auth_error = check_provision_auth(request)
    if auth_error:
        return auth_error

    try:
        status_code, body = await get_network_status(network_id)
    except Exception as exc:  # noqa: BLE001
        return _json(500, {"success": False, "error": str(exc)})
    return _json(status_code, body)


@app.post("/api/admin/domain-suggestions")
async def domain_suggestions_endpoint(request: Request):
    auth_error = check_provision_auth(request)
    if auth_error:
        return auth_error

    payload = await _read_json(request)
    if not isinstance(payload, dict):
        return _json(400, {"success": False, "error": "Invalid JSON body"})
    try:
        params = DomainSuggestionRequest.model_validate(payload)
    except ValidationError as exc:
        return _json(400, {"success": False, "error": describe_validation_error(exc)})

    status_code, body = await suggest_domains(params.niche, params.brand_name)
    return _json(status_code, body)


@app.get("/status")
async def status_endpoint():
    """Which integrations are configured. Never exposes secret values."""
    integrations = {
        "provision_secret": bool(getattr(config, "PROVISION_SECRET", None)),
        "supabase": bool(getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None))
        and bool(getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None)),
        "doubleclicker": bool(getattr(config, "DOUBLECLICKER_API_URL", None)),
        "fly": bool(getattr(config, "FLY_API_TOKEN", None)),
        "resend": bool(getattr(config, "RESEND_API_KEY", None)),
        "google": is_google_configured(),
        "google_domains_search": bool(getattr(config, "GOOGLE_DOMAINS_API_KEY", None)),
    }
    return {
        "started_at": STARTED_AT.isoformat(),
        "integrations": integrations,
        "fly_org": getattr(config, "FLY_ORG_SLUG", None),
        "fly_base_app": getattr(config, "FLY_BASE_APP", None),
    }
