from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SlotType = Literal["pickup", "delivery", "both"]


# A bookable pickup/delivery window parsed from the calendar feed
class FulfillmentSlot(BaseModel):
    id: str
    date: str  # YYYY-MM-DD (UTC)
    date_formatted: str
    start_time: str
    end_time: str
    start_timestamp: datetime
    end_timestamp: datetime
    type: SlotType
    title: str
    description: str = ""

    model_config = {"frozen": True}


# Response schema for GET /slots
class SlotsResponse(BaseModel):
    success: bool = True
    slots: List[FulfillmentSlot] = Field(default_factory=list)
    fetched_at: Optional[datetime] = Field(default=None, serialization_alias="fetchedAt")


class SlotsErrorResponse(BaseModel):
    error: str
    slots: List[FulfillmentSlot] = Field(default_factory=list)
