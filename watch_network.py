#!/usr/bin/env python3
"""
Poll a site network's provisioning status until every member settles.

Each member moves pending -> provisioning -> done/failed. This script checks
GET /api/admin/provision-network every 5 seconds and prints progress until all
members are done or failed.

Usage:
    python watch_network.py <network_id> [--base-url http://localhost:8000]
"""

import argparse
import sys
import time
from typing import Any, Dict, List

import requests

import config
from network_provisioner import is_network_settled

POLL_INTERVAL_SECONDS = 5


def fetch_network_status(base_url: str, network_id: str, secret: str) -> Dict[str, Any]:
    resp = requests.get(
        f"{base_url.rstrip('/')}/api/admin/provision-network",
        params={"network_id": network_id},
        headers={"Authorization": f"Bearer {secret}"},
        timeout=30,
    )
    body = resp.json()
    if not resp.ok or not body.get("success"):
        raise RuntimeError(body.get("error") or f"HTTP {resp.status_code}")
    return body


def format_members(members: List[Dict[str, Any]]) -> str:
    return ", ".join(f"{m.get('username')}={m.get('provision_status')}" for m in members)


def watch(base_url: str, network_id: str, secret: str, interval: float = POLL_INTERVAL_SECONDS) -> List[Dict[str, Any]]:
    while True:
        body = fetch_network_status(base_url, network_id, secret)
        members = body.get("members") or []
        print(f"[{time.strftime('%H:%M:%S')}] {format_members(members)}")
        if is_network_settled(members):
            return members
        time.sleep(interval)


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch a site network until provisioning finishes")
    parser.add_argument("network_id", help="ID of the site_networks row")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Provisioning service URL")
    parser.add_argument("--interval", type=float, default=POLL_INTERVAL_SECONDS, help="Seconds between polls")
    args = parser.parse_args()

    secret = getattr(config, "PROVISION_SECRET", None)
    if not secret:
        print("❌ PROVISION_SECRET is not set")
        sys.exit(1)

    try:
        members = watch(args.base_url, args.network_id, secret, args.interval)
    except (requests.RequestException, RuntimeError) as e:
        print(f"❌ Error polling network status: {e}")
        sys.exit(1)

    failed = [m for m in members if m.get("provision_status") == "failed"]
    print(f"\n✅ {len(members) - len(failed)} of {len(members)} sites provisioned.")
    if failed:
        print(f"⚠️  Failed: {', '.join(m.get('username', '?') for m in failed)}")
        sys.exit(2)


if __name__ == "__main__":
    main()
