from __future__ import annotations

from typing import Any, Dict, Optional
import requests
import config


MACHINES_API = "https://api.machines.dev/v1"
GRAPHQL_API = "https://api.fly.io/graphql"

SET_SECRETS_MUTATION = """
mutation($input: SetSecretsInput!) {
  setSecrets(input: $input) {
    app { name }
  }
}
"""

ALLOCATE_IP_MUTATION = """
mutation($input: AllocateIPAddressInput!) {
  allocateIpAddress(input: $input) {
    ipAddress {
      id
      address
      type
    }
  }
}
"""


class FlyClient:
    """
    Fly.io API client wrapping the Machines REST API and the GraphQL API.

    Machines REST handles apps, machines and certificates. Secrets and IP
    allocation are only exposed through GraphQL.
    """

    def __init__(self, api_token: Optional[str] = None, timeout: int = 30) -> None:
        self.api_token = api_token or getattr(config, "FLY_API_TOKEN", None)
        if not self.api_token:
            raise ValueError("Missing Fly.io credentials (FLY_API_TOKEN).")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> requests.Response:
        try:
            return requests.request(
                method,
                f"{MACHINES_API}{path}",
                headers=self._headers(),
                timeout=timeout or self.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise RuntimeError(f"Fly.io request failed: {exc}") from exc

    def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(
                GRAPHQL_API,
                headers=self._headers(),
                json={"query": query, "variables": variables},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RuntimeError(f"Fly.io GraphQL request failed: {exc}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise RuntimeError(f"Invalid JSON from Fly.io GraphQL ({resp.status_code}): {resp.text[:300]}") from exc

    # -------------------- Apps -------------------- #
    def create_app(self, app_name: str, org_slug: str) -> Dict[str, Any]:
        resp = self._request("POST", "/apps", json={"app_name": app_name, "org_slug": org_slug})
        if not resp.ok:
            raise RuntimeError(f'Failed to create app "{app_name}": {resp.status_code} {resp.text}')
        return resp.json() if resp.text else {}

    def delete_app(self, app_name: str) -> None:
        resp = self._request("DELETE", f"/apps/{app_name}")
        if not resp.ok and resp.status_code != 404:
            raise RuntimeError(f'Failed to delete app "{app_name}": {resp.status_code} {resp.text}')

    # -------------------- Secrets -------------------- #
    def set_secrets(self, app_name: str, secrets: Dict[str, str]) -> Dict[str, Any]:
        secrets_input = [{"key": key, "value": value} for key, value in secrets.items()]
        data = self._graphql(
            SET_SECRETS_MUTATION,
            {"input": {"appId": app_name, "secrets": secrets_input}},
        )
        if data.get("errors"):
            raise RuntimeError(f'Failed to set secrets on "{app_name}": {data["errors"]}')
        return data

    # -------------------- IP allocation -------------------- #
    def _allocate_ip(self, app_name: str, ip_type: str) -> str:
        data = self._graphql(
            ALLOCATE_IP_MUTATION,
            {"input": {"appId": app_name, "type": ip_type}},
        )
        if data.get("errors"):
            label = "IPv4" if ip_type == "v4" else "IPv6"
            raise RuntimeError(f'Failed to allocate {label} for "{app_name}": {data["errors"]}')
        return data["data"]["allocateIpAddress"]["ipAddress"]["address"]

    def allocate_ipv4(self, app_name: str) -> str:
        return self._allocate_ip(app_name, "v4")

    def allocate_ipv6(self, app_name: str) -> str:
        return self._allocate_ip(app_name, "v6")

    # -------------------- Machines -------------------- #
    def get_app_image(self, app_name: str) -> str:
        """Return the image reference of the first machine in an existing app."""
        resp = self._request("GET", f"/apps/{app_name}/machines")
        if not resp.ok:
            raise RuntimeError(f'Failed to list machines for "{app_name}": {resp.status_code}')
        machines = resp.json()
        if not machines:
            raise RuntimeError(f'No machines found for "{app_name}"')
        return machines[0]["config"]["image"]

    def create_machine(
        self,
        app_name: str,
        image: str,
        env: Dict[str, str],
        region: str = "syd",
    ) -> Dict[str, Any]:
        body = {
            "region": region,
            "config": {
                "image": image,
                "env": {
                    **env,
                    "NODE_ENV": "production",
                    "PORT": "3000",
                    "HOSTNAME": "0.0.0.0",
                },
                "services": [
                    {
                        "ports": [
                            {"port": 80, "handlers": ["http"]},
                            {"port": 443, "handlers": ["tls", "http"]},
                        ],
                        "protocol": "tcp",
                        "internal_port": 3000,
                        "autostop": "stop",
                        "autostart": True,
                        "min_machines_running": 0,
                        "force_instance_key": None,
                    }
                ],
                "guest": {"cpu_kind": "shared", "cpus": 1, "memory_mb": 512},
            },
        }
        # Machine creation waits on image pull, so it gets a longer timeout
        resp = self._request("POST", f"/apps/{app_name}/machines", timeout=60, json=body)
        if not resp.ok:
            raise RuntimeError(f'Failed to create machine in "{app_name}": {resp.status_code} {resp.text}')
        return resp.json()

    # -------------------- Certificates -------------------- #
    def add_certificate(self, app_name: str, hostname: str) -> Dict[str, Any]:
        resp = self._request("POST", f"/apps/{app_name}/certificates", json={"hostname": hostname})
        # 409 = certificate already exists
        if not resp.ok and resp.status_code != 409:
            raise RuntimeError(
                f'Failed to add certificate for "{hostname}" on "{app_name}": {resp.status_code} {resp.text}'
            )
        try:
            return resp.json()
        except ValueError:
            return {}

    def check_certificate(self, app_name: str, hostname: str) -> Dict[str, Any]:
        resp = self._request("GET", f"/apps/{app_name}/certificates/{hostname}")
        if not resp.ok:
            raise RuntimeError(
                f'Failed to check certificate for "{hostname}" on "{app_name}": {resp.status_code} {resp.text}'
            )
        return resp.json()
