# backend/storefront/slot_selector.py
"""Drop window selection for the checkout page.

Slots come from the calendar slots endpoint. Each local calendar day has a
unit limit tracked in local storage; once the recorded quantity for a day
reaches the limit its slots are shown as sold out and cannot be chosen.
The counter only reflects orders placed from this storage, it is not a
reservation.
"""
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from config import CheckoutConfig
from schemas.slots import FulfillmentSlot
from storefront.errors import SlotUnavailableError, StorageUnavailableError
from utils.ical import format_time

logger = logging.getLogger(__name__)

ORDER_STORAGE_KEY = "cookieisle_order_counts"
SLOT_REQUIRED_MESSAGE = "Please select a pickup/delivery time"


class LoadState(str, Enum):
    INERT = "inert"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


# Slot picked by the customer, times rendered in the viewer's timezone
@dataclass(frozen=True)
class SelectedSlot:
    id: str
    date: str
    start_time: str
    end_time: str
    start_timestamp: datetime
    end_timestamp: datetime


@dataclass(frozen=True)
class SlotOption:
    slot: FulfillmentSlot
    date: str
    start_time: str
    end_time: str
    display_type: str
    sold_out: bool


@dataclass(frozen=True)
class DayGroup:
    date: str
    header: str
    options: List[SlotOption]
    sold_out: bool
    sold_out_message: str = ""


def _fetch_json(url: str) -> dict:
    response = httpx.get(url, timeout=10.0, follow_redirects=True)
    return response.json()


class SlotSelector:
    def __init__(self, config: CheckoutConfig, storage=None,
                 fetcher: Optional[Callable[[str], dict]] = None, tz: Optional[tzinfo] = None):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher or _fetch_json
        # None means the host's local timezone
        self.tz = tz
        self.all_slots: List[FulfillmentSlot] = []
        self.selected: Optional[SelectedSlot] = None
        self.current_type = "pickup"
        self.state = LoadState.INERT
        self.error: Optional[str] = None

    @property
    def is_enabled(self) -> bool:
        return bool(self.config.slots_feed_url)

    def init(self, initial_type: str = "pickup") -> LoadState:
        self.current_type = initial_type or "pickup"
        if not self.is_enabled:
            logger.info("SlotSelector: no slots feed configured")
            self.state = LoadState.INERT
            return self.state
        return self.fetch_slots()

    def fetch_slots(self) -> LoadState:
        if not self.is_enabled:
            return self.state
        self.state = LoadState.LOADING
        try:
            data = self.fetcher(self.config.slots_feed_url)
            raw_slots = data.get("slots")
            if data.get("success") and raw_slots:
                self.all_slots = [FulfillmentSlot.model_validate(raw) for raw in raw_slots]
            elif raw_slots is not None and len(raw_slots) == 0:
                self.all_slots = []
            else:
                raise ValueError(data.get("error") or "Failed to load slots")
        except (httpx.HTTPError, ValueError, TypeError, AttributeError, PydanticValidationError) as e:
            logger.error("Failed to fetch slots: %s", e)
            self.state = LoadState.ERROR
            return self.state

        self.state = LoadState.READY if self.all_slots else LoadState.EMPTY
        self._refresh_selection()
        return self.state

    retry = fetch_slots

    def _local(self, dt: datetime) -> datetime:
        return dt.astimezone(self.tz)

    def local_date(self, slot: FulfillmentSlot) -> str:
        return self._local(slot.start_timestamp).date().isoformat()

    def _matches_type(self, slot: FulfillmentSlot) -> bool:
        return slot.type == self.current_type or slot.type == "both"

    # Slots for the current fulfillment type, grouped by local day
    def visible_days(self) -> List[DayGroup]:
        counts = self.order_counts()
        groups: "OrderedDict[str, List[FulfillmentSlot]]" = OrderedDict()
        for slot in self.all_slots:
            if self._matches_type(slot):
                groups.setdefault(self.local_date(slot), []).append(slot)

        days = []
        for date, slots in groups.items():
            sold_out = counts.get(date, 0) >= self.config.drop_window_unit_limit
            first_start = self._local(slots[0].start_timestamp)
            options = [
                SlotOption(
                    slot=slot,
                    date=date,
                    start_time=format_time(self._local(slot.start_timestamp)),
                    end_time=format_time(self._local(slot.end_timestamp)),
                    display_type=self.current_type if slot.type == "both" else slot.type,
                    sold_out=sold_out,
                )
                for slot in slots
            ]
            days.append(DayGroup(
                date=date,
                header=f"{first_start:%A, %B} {first_start.day}",
                options=options,
                sold_out=sold_out,
                sold_out_message=self.config.drop_window_sold_out_message if sold_out else "",
            ))
        return days

    def _find_option(self, slot_id: str) -> Optional[SlotOption]:
        for day in self.visible_days():
            for option in day.options:
                if option.slot.id == slot_id:
                    return option
        return None

    def select_slot(self, slot_id: str) -> SelectedSlot:
        option = self._find_option(slot_id)
        if option is None:
            raise SlotUnavailableError(f"Slot {slot_id} is not available for {self.current_type}")
        if option.sold_out:
            raise SlotUnavailableError(self.config.drop_window_sold_out_message)

        self.selected = SelectedSlot(
            id=option.slot.id,
            date=option.date,
            start_time=option.start_time,
            end_time=option.end_time,
            start_timestamp=option.slot.start_timestamp,
            end_timestamp=option.slot.end_timestamp,
        )
        self.error = None
        return self.selected

    # Drop a selection that is no longer offered or has sold out
    def _refresh_selection(self) -> None:
        if self.selected is None:
            return
        option = self._find_option(self.selected.id)
        if option is None or option.sold_out:
            self.selected = None

    def set_fulfillment_type(self, fulfillment_type: str) -> None:
        if fulfillment_type == self.current_type:
            return
        self.current_type = fulfillment_type
        self.selected = None

    def get_selected_slot(self) -> Optional[SelectedSlot]:
        return self.selected

    def validate(self) -> bool:
        if not self.is_enabled:
            return True
        if self.selected is None:
            self.error = SLOT_REQUIRED_MESSAGE
            return False
        self.error = None
        return True

    def order_counts(self) -> Dict[str, int]:
        if self.storage is None:
            return {}
        try:
            stored = self.storage.get(ORDER_STORAGE_KEY)
            counts = json.loads(stored) if stored else {}
        except (StorageUnavailableError, ValueError) as e:
            logger.warning("Failed to read order counts: %s", e)
            return {}
        return counts if isinstance(counts, dict) else {}

    def record_order(self, date: str, quantity: int) -> Dict[str, int]:
        counts = self.order_counts()
        counts[date] = counts.get(date, 0) + quantity
        if self.storage is not None:
            try:
                self.storage.set(ORDER_STORAGE_KEY, json.dumps(counts))
            except StorageUnavailableError as e:
                logger.warning("Failed to save order counts: %s", e)
        self._refresh_selection()
        return counts
