"""Outbound email through the Microsoft Graph ``sendMail`` API."""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import httpx

from config import settings
from docnudge.errors import TransportError

_LOGGER = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"


class GraphMailer:
    """Client-credentials mailer. Refuses to send when not configured."""

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        sender: Optional[str] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.HTTP_TIMEOUT,
    ):
        self.tenant_id = tenant_id if tenant_id is not None else settings.MS_GRAPH_TENANT_ID
        self.client_id = client_id if client_id is not None else settings.MS_GRAPH_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.MS_GRAPH_CLIENT_SECRET
        self.sender = sender if sender is not None else settings.SENDER_EMAIL
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires = 0.0

    @property
    def configured(self) -> bool:
        return all([self.tenant_id, self.client_id, self.client_secret, self.sender])

    async def _access_token(self) -> str:
        # refreshed a minute before expiry
        if self._token and time.monotonic() < self._token_expires - 60:
            return self._token
        resp = await self._http.post(
            TOKEN_URL.format(tenant=self.tenant_id),
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": "https://graph.microsoft.com/.default",
            },
        )
        resp.raise_for_status()
        payload = resp.json()
        self._token = payload["access_token"]
        _LOGGER.debug("[Email] refreshed Graph access token")
        self._token_expires = time.monotonic() + float(payload.get("expires_in", 3600))
        return self._token

    async def send(self, recipients: List[str], subject: str, body: str) -> None:
        if not self.configured:
            raise TransportError("Graph mailer is not configured")
        token = await self._access_token()
        message = {
            "message": {
                "subject": subject,
                "body": {"contentType": "Text", "content": body},
                "toRecipients": [{"emailAddress": {"address": r}} for r in recipients],
            },
            "saveToSentItems": "true",
        }
        resp = await self._http.post(
            f"{GRAPH_URL}/users/{self.sender}/sendMail",
            json=message,
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.is_error:
            raise TransportError(f"sendMail failed ({resp.status_code}): {resp.text[:200]}")

    async def aclose(self) -> None:
        await self._http.aclose()
