from __future__ import annotations

from typing import Any, Dict, List, Optional
import requests
import config


RESEND_API = "https://api.resend.com/emails"


class ResendClient:
    """Minimal Resend transactional email client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: int = 30,
    ) -> None:
        self.api_key = api_key or getattr(config, "RESEND_API_KEY", None)
        if not self.api_key:
            raise ValueError("RESEND_API_KEY not set")
        self.from_email = from_email or getattr(config, "RESEND_FROM_EMAIL", None) or "noreply@doubleclicker.app"
        self.timeout = timeout

    def send_email(self, to: List[str], subject: str, html: str) -> Dict[str, Any]:
        """
        Send one HTML email from "Doubleclicker <from_email>".

        Returns { id } on success or { error } when Resend rejects the message.
        Transport failures raise RuntimeError.
        """
        try:
            resp = requests.post(
                RESEND_API,
                json={
                    "from": f"Doubleclicker <{self.from_email}>",
                    "to": to,
                    "subject": subject,
                    "html": html,
                },
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RuntimeError(f"Resend request failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {"message": resp.text}

        if not resp.ok:
            return {"error": body.get("message") or f"HTTP {resp.status_code}"}
        return {"id": body.get("id")}
