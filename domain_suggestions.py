"""
Domain name suggestions via the Cloud Domains searchDomains API.

Search queries are generated from the niche and brand name, then results are
filtered to available domains under MAX_PRICE per year.

Requires GOOGLE_DOMAINS_API_KEY (API key with Cloud Domains enabled) and,
ideally, GOOGLE_CLOUD_PROJECT.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

import config

logger = logging.getLogger(__name__)

CLOUD_DOMAINS_API = "https://domains.googleapis.com/v1"
MAX_PRICE = 15
MAX_QUERIES = 5
MAX_SUGGESTIONS = 20


class DomainSearchAuthError(Exception):
    """Project/auth failure that makes every further query pointless."""


def _clean(text: str) -> str:
    return re.sub(r"[^a-z0-9\s]", "", text.lower()).strip()


def generate_queries(niche: Optional[str] = None, brand_name: Optional[str] = None) -> List[str]:
    queries: List[str] = []

    # Brand name is the strongest signal
    if brand_name:
        queries.append(_clean(brand_name))

    if niche:
        queries.append(_clean(niche))
        words = [w for w in _clean(niche).split() if len(w) > 2]
        if len(words) >= 2:
            queries.append(" ".join(words[:2]))
        if len(words) >= 3:
            queries.append(f"{words[0]} {words[2]}")

    if brand_name and niche:
        brand_words = _clean(brand_name).split()
        niche_words = [w for w in _clean(niche).split() if len(w) > 2]
        if brand_words and niche_words:
            queries.append(f"{brand_words[0]} {niche_words[0]}")

    # Deduplicate (order preserved) and cap to avoid rate limits
    unique = [q for q in dict.fromkeys(queries) if q]
    return unique[:MAX_QUERIES]


def yearly_price(param: Dict[str, Any]) -> float:
    price = param.get("yearlyPrice") or {}
    units = int(price.get("units") or 0)
    nanos = price.get("nanos") or 0
    return units + nanos / 1_000_000_000


def collect_suggestions(register_parameters: List[Dict[str, Any]], seen: set) -> List[Dict[str, Any]]:
    """Keep available, affordable domains that have not been seen yet."""
    suggestions = []
    for param in register_parameters:
        domain = param.get("domainName")
        if param.get("availability") != "AVAILABLE" or not domain or domain in seen:
            continue
        price = yearly_price(param)
        if price <= MAX_PRICE:
            seen.add(domain)
            suggestions.append({
                "domain": domain,
                "available": True,
                "price": price,
                "currency": (param.get("yearlyPrice") or {}).get("currencyCode", "USD"),
            })
    return suggestions


def search_domains(query: str, api_key: str, location: str, timeout: int = 30) -> List[Dict[str, Any]]:
    try:
        resp = requests.get(
            f"{CLOUD_DOMAINS_API}/{location}/registrations:searchDomains",
            params={"query": query, "key": api_key},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise RuntimeError(f"Cloud Domains request failed: {exc}") from exc

    if not resp.ok:
        try:
            message = resp.json().get("error", {}).get("message")
        except ValueError:
            message = None
        message = message or f"HTTP {resp.status_code}"

        if resp.status_code in (401, 403):
            raise DomainSearchAuthError(
                f"Google Cloud Domains API auth error: {message}. Check GOOGLE_DOMAINS_API_KEY "
                "and ensure Cloud Domains API is enabled."
            )
        if resp.status_code == 404:
            raise DomainSearchAuthError(
                f"Google Cloud Domains API project error: {message}. Set GOOGLE_CLOUD_PROJECT "
                "env var to your GCP project ID."
            )
        raise RuntimeError(message)

    return resp.json().get("registerParameters") or []


async def suggest_domains(niche: Optional[str], brand_name: Optional[str]) -> Tuple[int, Dict[str, Any]]:
    api_key = getattr(config, "GOOGLE_DOMAINS_API_KEY", None)
    if not api_key:
        return 500, {
            "success": False,
            "error": "GOOGLE_DOMAINS_API_KEY not configured. Add it to your environment variables.",
        }
    if not niche and not brand_name:
        return 400, {"success": False, "error": "At least one of niche or brand_name is required"}

    project = getattr(config, "GOOGLE_CLOUD_PROJECT", None)
    location = f"projects/{project}/locations/global" if project else "projects/-/locations/global"

    queries = generate_queries(niche, brand_name)
    suggestions: List[Dict[str, Any]] = []
    seen: set = set()
    errors: List[str] = []
    loop = asyncio.get_event_loop()

    for query in queries:
        try:
            params = await loop.run_in_executor(None, search_domains, query, api_key, location)
        except DomainSearchAuthError as exc:
            return 502, {"success": False, "error": str(exc)}
        except Exception as exc:
            logger.warning("[DOMAINS] Query %r failed: %s", query, exc)
            errors.append(f'Query "{query}": {exc}')
            continue
        suggestions.extend(collect_suggestions(params, seen))

    suggestions.sort(key=lambda s: s["price"])

    body: Dict[str, Any] = {
        "success": True,
        "suggestions": suggestions[:MAX_SUGGESTIONS],
        "queries_tried": len(queries),
    }
    if errors:
        body["errors"] = errors
    return 200, body
