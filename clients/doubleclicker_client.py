from __future__ import annotations

from typing import Any, Dict, Optional
import requests
import config


class DoubleclickerClient:
    """
    Client for the Doubleclicker content pipeline.

    Doubleclicker orchestrates workspace -> brand -> products -> keywords ->
    pipeline for a newly provisioned tenant. It authenticates callers with
    the shared provisioning secret.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: int = 30,
    ) -> None:
        self.base_url = (base_url or getattr(config, "DOUBLECLICKER_API_URL", None) or "").rstrip("/")
        self.secret = secret or getattr(config, "PROVISION_SECRET", None)
        if not self.base_url:
            raise ValueError("DOUBLECLICKER_API_URL not set")
        self.timeout = timeout

    def auto_onboard(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST the onboarding payload to /api/strategy/auto-onboard.

        Returns { ok: bool, status_code: int, data: dict } whatever the HTTP
        outcome; only transport failures raise.
        """
        try:
            resp = requests.post(
                f"{self.base_url}/api/strategy/auto-onboard",
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.secret}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RuntimeError(f"Doubleclicker request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}

        return {"ok": resp.ok, "status_code": resp.status_code, "data": data}
