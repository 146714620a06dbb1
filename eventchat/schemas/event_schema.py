from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from eventchat.schemas.api_schema import ApiModel
from eventchat.utils.text import clean_value

EventSource = Literal["user_created", "discovered"]
EventMode = Literal["online", "offline", "hybrid"]
ReminderType = Literal["before_event", "day_of", "custom", "remind_later"]
ReminderStatus = Literal["pending", "sent", "cancelled"]


class EventCandidate(BaseModel):
    """A web search hit that may describe an attendable event (not yet stored)."""
    title: str
    link: Optional[str] = None
    snippet: Optional[str] = None
    location: Optional[str] = None


class EventCreate(ApiModel):
    title: str = Field(..., min_length=1)
    category: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    mode: Optional[EventMode] = None
    price: Optional[str] = None
    snippet: Optional[str] = None
    description: Optional[str] = None
    source: EventSource = "user_created"
    source_url: Optional[str] = None

    # Placeholders ("TBD", "N/A", ...) are never stored; the field stays absent instead.
    @field_validator("category", "location", "price", "snippet", "description", "source_url", mode="before")
    @classmethod
    def _drop_placeholders(cls, value):
        if value is None or not isinstance(value, str):
            return value
        return clean_value(value)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value


class EventUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    mode: Optional[EventMode] = None
    price: Optional[str] = None
    snippet: Optional[str] = None
    description: Optional[str] = None

    @field_validator("category", "location", "price", "snippet", "description", mode="before")
    @classmethod
    def _drop_placeholders(cls, value):
        if value is None or not isinstance(value, str):
            return value
        return clean_value(value)


class EventRecord(EventCreate):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class EventOut(EventRecord):
    is_registered: bool = False
    has_reminder: bool = False
    attendees_count: int = 0


class EventStats(ApiModel):
    created: int = 0
    discovered: int = 0
    registered: int = 0
    upcoming: int = 0
    reminders: int = 0


class RegistrationRecord(ApiModel):
    id: str
    user_id: str
    event_id: str
    name: str
    email: str
    status: str = "confirmed"
    created_at: datetime


class ReminderRecord(ApiModel):
    id: str
    user_id: str
    event_id: str
    reminder_date: datetime
    reminder_type: ReminderType = "before_event"
    status: ReminderStatus = "pending"
    message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


class Notification(BaseModel):
    """An email queued by a dialog turn or route, sent after the response."""
    recipient: str
    template: Literal["registration", "event_saved", "remind_later", "reminder"]
    data: Dict[str, Any] = Field(default_factory=dict)
