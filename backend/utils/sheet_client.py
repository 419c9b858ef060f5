# backend/utils/sheet_client.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends

from config import Settings, get_settings

logger = logging.getLogger(__name__)


# Outcome reported by the spreadsheet web app
@dataclass
class SinkResult:
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    duplicate: bool = False
    resubscribed: bool = False


class SheetClient:
    """Posts JSON documents to the spreadsheet-backed web apps."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def post(self, url: str, payload: Dict[str, Any]) -> SinkResult:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
            try:
                response = await client.post(url, json=payload)
            except httpx.HTTPError as e:
                logger.error(f"Spreadsheet sink unreachable: {e}")
                return SinkResult(success=False, error=str(e))

        # The web app answers with a redirect or JSON; both count as delivered
        if not (response.is_success or response.status_code == 302):
            return SinkResult(success=False, error=f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            # HTML success pages are common
            return SinkResult(success=True)
        if not isinstance(data, dict):
            return SinkResult(success=True)

        return SinkResult(
            success=data.get("success") is not False and data.get("result") != "error",
            error=data.get("error"),
            message=data.get("message"),
            duplicate=bool(data.get("duplicate")),
            resubscribed=bool(data.get("resubscribed")),
        )

    async def forward_order(self, url: Optional[str], payload: Dict[str, Any]) -> bool:
        # Best effort: failures are logged only, the provider retries webhooks on its own
        if not url:
            logger.error("ORDER_SHEET_SCRIPT_URL not configured")
            return False
        result = await self.post(url, payload)
        if not result.success:
            logger.error("Order sheet error for session %s: %s", payload.get("id"), result.error)
        return result.success


def get_sheet_client(settings: Settings = Depends(get_settings)) -> SheetClient:
    return SheetClient(timeout=settings.HTTP_TIMEOUT)
