"""
Provisioning of a whole site network.

A network is a seed site plus satellite sites in related niches. Every member
is provisioned through the single-site flow in parallel, and each one is told
about all the other members so Doubleclicker can cross-link them.
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

import config
from clients.supabase_client import SupabaseClient
from provisioner import YearlyPrice, describe_validation_error, provision_from_payload

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("done", "failed")


class NetworkMember(BaseModel):
    username: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    niche: str = Field(..., min_length=1)
    contact_email: str = Field(..., min_length=1)
    domain: Optional[str] = None
    role: Literal["seed", "satellite"] = "satellite"
    purchase_domain: bool = False
    domain_yearly_price: Optional[YearlyPrice] = None
    domain_notices: List[str] = Field(default_factory=list)


class NetworkRequest(BaseModel):
    network_name: str
    seed_niche: str
    members: List[NetworkMember]
    fly_region: str = "syd"
    setup_google_analytics: bool = False
    setup_google_tag_manager: bool = False
    setup_search_console: bool = False


async def _blocking(fn, *args, **kwargs):
    return await asyncio.get_event_loop().run_in_executor(None, functools.partial(fn, *args, **kwargs))


def partners_for(members: List[NetworkMember], username: str) -> List[Dict[str, Any]]:
    """Every other member of the network, as seen by `username`."""
    return [
        {
            "domain": member.domain or f"{member.username}-blog.fly.dev",
            "niche": member.niche,
            "display_name": member.display_name,
        }
        for member in members
        if member.username != username
    ]


def member_provision_payload(network: NetworkRequest, member: NetworkMember) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "username": member.username,
        "display_name": member.display_name,
        "contact_email": member.contact_email,
        "niche": member.niche,
        "fly_region": network.fly_region,
        "setup_google_analytics": network.setup_google_analytics,
        "setup_google_tag_manager": network.setup_google_tag_manager,
        "setup_search_console": network.setup_search_console,
        "purchase_domain": member.purchase_domain,
        "domain_notices": member.domain_notices,
        "network_partners": partners_for(network.members, member.username),
    }
    if member.domain:
        payload["domain"] = member.domain
    if member.domain_yearly_price:
        payload["domain_yearly_price"] = member.domain_yearly_price.model_dump(exclude_none=True)
    return payload


async def _provision_member(
    supabase: SupabaseClient,
    network_id: Any,
    network: NetworkRequest,
    member: NetworkMember,
) -> Dict[str, Any]:
    member_key = {"network_id": network_id, "username": member.username}
    try:
        await _blocking(supabase.update_rows, "site_network_members", {"provision_status": "provisioning"}, member_key)
    except Exception as exc:
        logger.warning("[NETWORK] Could not mark %s as provisioning: %s", member.username, exc)

    try:
        status_code, body = await provision_from_payload(member_provision_payload(network, member))
    except Exception as exc:
        await _mark_failed(supabase, member_key, str(exc))
        raise

    succeeded = status_code == 200 and bool(body.get("success"))
    try:
        await _blocking(
            supabase.update_rows,
            "site_network_members",
            {"provision_status": "done" if succeeded else "failed", "provision_result": body},
            member_key,
        )
    except Exception as exc:
        logger.error("[NETWORK] Could not record result for %s: %s", member.username, exc)
        if succeeded:
            # Retry without the result payload so the row still settles
            try:
                await _blocking(supabase.update_rows, "site_network_members", {"provision_status": "done"}, member_key)
            except Exception:
                await _mark_failed(supabase, member_key, str(exc))
        else:
            await _mark_failed(supabase, member_key, str(exc))

    logger.info("[NETWORK] Member %s finished: %s", member.username, "done" if succeeded else "failed")
    return {"username": member.username, **body, "success": succeeded}


async def _mark_failed(supabase: SupabaseClient, member_key: Dict[str, Any], error: str) -> None:
    try:
        await _blocking(
            supabase.update_rows,
            "site_network_members",
            {"provision_status": "failed", "provision_result": {"success": False, "error": error}},
            member_key,
        )
    except Exception as exc:
        logger.error("[NETWORK] Could not mark %s as failed: %s", member_key.get("username"), exc)


async def provision_network(payload: Any) -> Tuple[int, Dict[str, Any]]:
    if not isinstance(payload, dict):
        return 400, {"success": False, "error": "Request body must be a JSON object"}
    if not str(payload.get("network_name") or "").strip():
        return 400, {"success": False, "error": "network_name is required"}
    if not str(payload.get("seed_niche") or "").strip():
        return 400, {"success": False, "error": "seed_niche is required"}
    if not isinstance(payload.get("members"), list) or not payload["members"]:
        return 400, {"success": False, "error": "members array is required"}

    try:
        network = NetworkRequest.model_validate(payload)
    except ValidationError as exc:
        return 400, {"success": False, "error": describe_validation_error(exc)}

    if not getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None) or not getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None):
        return 500, {"success": False, "error": "Database not configured"}

    supabase = SupabaseClient()

    try:
        rows = await _blocking(
            supabase.insert_row,
            "site_networks",
            {"name": network.network_name.strip(), "seed_niche": network.seed_niche.strip()},
        )
        network_row = rows[0]
    except Exception as exc:
        return 500, {"success": False, "error": f"Failed to create network: {exc}"}

    network_id = network_row["id"]
    member_rows = [
        {
            "network_id": network_id,
            "username": member.username,
            "display_name": member.display_name,
            "niche": member.niche,
            "domain": member.domain,
            "role": member.role,
            "provision_status": "pending",
        }
        for member in network.members
    ]
    try:
        await _blocking(supabase.insert_row, "site_network_members", member_rows)
    except Exception as exc:
        return 500, {"success": False, "error": f"Failed to create members: {exc}"}

    logger.info("[NETWORK] Provisioning %d members of %s", len(network.members), network_row.get("name"))
    results = await asyncio.gather(
        *[_provision_member(supabase, network_id, network, member) for member in network.members],
        return_exceptions=True,
    )

    summary = []
    for member, result in zip(network.members, results):
        if isinstance(result, Exception):
            logger.error("[NETWORK] Member %s failed: %s", member.username, result)
            summary.append({"username": member.username, "success": False, "status": "failed", "error": str(result)})
        else:
            summary.append({
                "username": member.username,
                "success": result["success"],
                "status": "done" if result["success"] else "failed",
            })

    return 200, {
        "success": True,
        "network_id": network_id,
        "network_name": network_row.get("name"),
        "members": summary,
    }


async def get_network_status(network_id: Optional[str]) -> Tuple[int, Dict[str, Any]]:
    if not network_id:
        return 400, {"success": False, "error": "network_id is required"}

    if not getattr(config, "NEXT_PUBLIC_SUPABASE_URL", None) or not getattr(config, "SUPABASE_SERVICE_ROLE_KEY", None):
        return 500, {"success": False, "error": "Database not configured"}

    supabase = SupabaseClient()
    network = await _blocking(supabase.find_one, "site_networks", {"id": network_id})
    if not network:
        return 404, {"success": False, "error": "Network not found"}

    members = await _blocking(
        supabase.select_rows, "site_network_members", {"network_id": network_id}, order_by="created_date"
    )
    return 200, {"success": True, "network": network, "members": members}


def is_network_settled(members: List[Dict[str, Any]]) -> bool:
    return bool(members) and all(m.get("provision_status") in TERMINAL_STATUSES for m in members)
