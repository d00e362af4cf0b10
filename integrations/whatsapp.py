"""WhatsApp Web bridge adapter.

The bridge is a small HTTP service driving a browser session logged into
WhatsApp Web. Authentication means the bridge has a live, QR-paired
session; sending is only possible while that session holds.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import httpx

from clinic_sync.errors import MessagingDispatchError
from clinic_sync.schemas import NotificationType

LOGGER = logging.getLogger(__name__)

_PHONE_RE = re.compile(r"^\+?[0-9]{8,15}$")


def format_phone_number(phone: str, default_country_code: str = "+39") -> str:
    """Normalize a phone number to international ``+<digits>`` form."""

    formatted = re.sub(r"[^0-9+]", "", phone.strip())
    if formatted.startswith("+"):
        return formatted
    if formatted.startswith("00"):
        return "+" + formatted[2:]
    if formatted.startswith("0"):
        return default_country_code + formatted
    return "+" + formatted


def is_valid_phone_number(phone: str) -> bool:
    return bool(_PHONE_RE.match(phone))


class WhatsAppWebAdapter:
    """Messaging adapter backed by a WhatsApp Web automation bridge."""

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str = "",
        enabled: bool = True,
        use_stub: bool = False,
        default_country_code: str = "+39",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.enabled = enabled
        self.use_stub = use_stub
        self.default_country_code = default_country_code
        self._timeout = timeout_seconds
        self._transport = transport
        self._authenticated = False

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def is_enabled(self) -> bool:
        return self.enabled

    async def is_authenticated(self) -> bool:
        if not self.enabled:
            return False
        if self.use_stub:
            return self._authenticated

        try:
            payload = await self._request("GET", "/session")
        except httpx.HTTPError as exc:
            LOGGER.warning("whatsapp session status failed: %s", exc)
            return False
        self._authenticated = bool(payload.get("authenticated"))
        return self._authenticated

    async def authenticate(self) -> bool:
        """Ask the bridge to open (or resume) the WhatsApp Web session."""

        if not self.enabled:
            LOGGER.info("whatsapp authenticate skipped: service disabled")
            return False
        if self.use_stub:
            self._authenticated = True
            return True

        try:
            payload = await self._request("POST", "/session")
        except httpx.HTTPError as exc:
            LOGGER.error("whatsapp authenticate failed: %s", exc)
            self._authenticated = False
            return False
        self._authenticated = bool(payload.get("authenticated"))
        if not self._authenticated and payload.get("qr"):
            LOGGER.info("whatsapp bridge is waiting for a QR code scan")
        return self._authenticated

    async def disconnect(self) -> None:
        if not self.use_stub:
            try:
                await self._request("DELETE", "/session")
            except httpx.HTTPError as exc:
                LOGGER.warning("whatsapp disconnect failed: %s", exc)
        self._authenticated = False

    async def send(self, phone: str, message: str, notification_type: NotificationType) -> bool:
        formatted = format_phone_number(phone, self.default_country_code)
        if not is_valid_phone_number(formatted):
            raise MessagingDispatchError(f"invalid phone number: {phone!r}")

        LOGGER.info(
            "whatsapp send: use_stub=%s type=%s to=%s",
            self.use_stub,
            notification_type,
            formatted,
        )
        if self.use_stub:
            return self._authenticated

        try:
            payload = await self._request(
                "POST",
                "/messages",
                json={"phone": formatted, "message": message, "type": notification_type},
            )
        except httpx.HTTPStatusError as exc:
            raise MessagingDispatchError(
                f"bridge rejected message: status={exc.response.status_code} "
                f"body={exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MessagingDispatchError(f"bridge unreachable: {exc}") from exc
        return bool(payload.get("sent"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _http_client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        async with self._http_client() as client:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            LOGGER.debug("whatsapp bridge %s %s -> %s", method, path, response.status_code)
            if not response.content:
                return {}
            body = response.json()
        return body if isinstance(body, dict) else {}
