# backend/routes/slots.py
import logging
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from schemas.slots import SlotsErrorResponse, SlotsResponse
from utils.ical import CalendarFetchError, fetch_slots

router = APIRouter(tags=["Slots"])
logger = logging.getLogger(__name__)


def _json(body, status_code: int, settings: Settings) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers={"Cache-Control": f"public, max-age={settings.CACHE_TTL}"},
    )


# Upcoming drop windows for the checkout page
@router.get("/slots", response_model=SlotsResponse)
async def list_slots(settings: Settings = Depends(get_settings)):
    if not settings.CALENDAR_ICAL_URL:
        logger.error("CALENDAR_ICAL_URL not configured")
        return _json(SlotsErrorResponse(error="Calendar not configured"), 500, settings)

    try:
        slots = await fetch_slots(
            settings.CALENDAR_ICAL_URL,
            settings.EVENT_PREFIX,
            timeout=settings.HTTP_TIMEOUT,
        )
    except (CalendarFetchError, httpx.HTTPError) as e:
        logger.error("Calendar fetch failed: %s", e)
        return _json(SlotsErrorResponse(error="Failed to fetch calendar"), 500, settings)

    return _json(SlotsResponse(slots=slots, fetched_at=datetime.now(timezone.utc)), 200, settings)
