import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import config
from clients.fly_client import FlyClient
from clients.resend_client import ResendClient
from clients.supabase_client import SupabaseClient
from email_templates import render_site_live_email

logger = logging.getLogger(__name__)


def certificate_is_issued(cert_data: Optional[Dict[str, Any]]) -> bool:
    """Fly reports certificate state in a few shapes depending on API version."""
    if not cert_data:
        return False
    data = cert_data.get("data") or {}
    return bool(
        (data.get("acme_certificate") or {}).get("configured")
        or (data.get("certificate") or {}).get("configured")
        or cert_data.get("configured")
    )


def _finalize_live_site(username: str, live_url: str) -> None:
    """Point the tenant's DB rows at the live URL and send the confirmation email."""
    supabase = SupabaseClient()
    supabase.update_rows("brand_guidelines", {"website_url": live_url}, {"user_name": username})
    supabase.update_rows("company_information", {"client_website": live_url}, {"username": username})

    if not getattr(config, "RESEND_API_KEY", None):
        return

    try:
        company = supabase.find_one("company_information", {"username": username}, columns="email")
        if company and company.get("email"):
            result = ResendClient().send_email(
                [company["email"]],
                f"Your site is live at {live_url}",
                render_site_live_email(live_url),
            )
            if result.get("error"):
                logger.error("[VERIFY] Confirmation email rejected for %s: %s", username, result["error"])
    except Exception as exc:
        logger.error("[VERIFY] Error sending confirmation email for %s: %s", username, exc)


async def verify_domain(username: Optional[str], domain: Optional[str]) -> Tuple[int, Dict[str, Any]]:
    """
    Check whether DNS is configured and the www certificate has been issued.

    Reached from the link in the DNS setup email. Returns (http_status, body).
    """
    if not username or not domain:
        return 400, {"success": False, "error": "Missing username or domain parameter"}

    if not getattr(config, "FLY_API_TOKEN", None):
        return 500, {"success": False, "error": "Fly.io not configured"}

    app_name = f"{username}-blog"
    loop = asyncio.get_event_loop()

    try:
        fly = FlyClient()
        cert_data = await loop.run_in_executor(None, fly.check_certificate, app_name, f"www.{domain}")
    except Exception as exc:
        logger.error("[VERIFY] Error checking certificate for %s: %s", domain, exc)
        return 500, {"success": False, "error": str(exc) or "Failed to check domain status"}

    live_url = f"https://www.{domain}"

    if certificate_is_issued(cert_data):
        if getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None) and getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None):
            try:
                await loop.run_in_executor(None, _finalize_live_site, username, live_url)
            except Exception as exc:
                logger.error("[VERIFY] Error updating live URL for %s: %s", username, exc)

        logger.info("[VERIFY] %s is live at %s", username, live_url)
        return 200, {
            "success": True,
            "status": "live",
            "live_url": live_url,
            "message": f"Your site is live at {live_url}!",
        }

    return 200, {
        "success": False,
        "status": "pending",
        "message": "DNS has not propagated yet. This can take a few minutes. Please try again shortly.",
        "dns_records": [
            {"type": "CNAME", "name": "www", "value": f"{app_name}.fly.dev"},
            {"type": "A", "name": "@", "value": "Check your provisioning email for the IP address"},
        ],
        "raw": cert_data,
    }
