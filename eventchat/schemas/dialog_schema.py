import logging
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from eventchat.schemas.event_schema import EventCandidate
from eventchat.utils.text import clean_value

logger = logging.getLogger(__name__)

Intent = Literal["discovery", "registration", "reminder", "general", "create"]
INTENTS = ("discovery", "registration", "reminder", "general", "create")

MAX_LAST_EVENTS = 5
MAX_FOUND_EVENTS = 5


def _nullish(value: Any) -> Any:
    if isinstance(value, str):
        return clean_value(value)
    return value


# --- AI extraction payloads ---

class IntentExtraction(BaseModel):
    """Structured reading of one user message. Accepts the camelCase keys the LLM emits."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    intent: Intent = "general"
    event_title: Optional[str] = None
    date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    time: Optional[str] = Field(default=None, description="HH:MM, 24h")
    location: Optional[str] = None
    category: Optional[str] = None
    use_user_location: bool = False

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, value):
        value = str(value or "").strip().lower()
        return value if value in INTENTS else "general"

    @field_validator("event_title", "date", "time", "location", "category", mode="before")
    @classmethod
    def _nulls(cls, value):
        return _nullish(value)

    @field_validator("use_user_location", mode="before")
    @classmethod
    def _boolish(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        return bool(value)


class WebEventDetails(BaseModel):
    """Date/time/location the web evidence supports for an event. Unknown stays None."""
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None

    @field_validator("date", "time", "location", mode="before")
    @classmethod
    def _nulls(cls, value):
        return _nullish(value)


class RegistrantDetails(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def _nulls(cls, value):
        return _nullish(value)


class ParsedDateTime(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None

    @field_validator("date", "time", mode="before")
    @classmethod
    def _nulls(cls, value):
        return _nullish(value)


# --- Event creation dialog ---

class CreationDraft(BaseModel):
    """Everything known about an event under construction.

    ``evidence`` is the cached web search for ``title``; it is fetched once per title.
    User-supplied values always win over web-extracted ones.
    """
    title: str = Field(..., min_length=1)
    evidence: List[EventCandidate] = Field(default_factory=list)
    web_extracted: bool = False
    web_date: Optional[str] = None
    web_time: Optional[str] = None
    web_location: Optional[str] = None
    user_date: Optional[str] = None
    user_time: Optional[str] = None
    user_location: Optional[str] = None
    snippets_section: str = ""
    links_section: str = ""
    shown_event_card: bool = False

    @property
    def extracted_date(self) -> Optional[str]:
        return self.user_date or self.web_date

    @property
    def extracted_time(self) -> Optional[str]:
        return self.user_time or self.web_time

    @property
    def extracted_location(self) -> Optional[str]:
        return self.user_location or self.web_location

    def top_results(self, limit: int = 5) -> List[EventCandidate]:
        return self.evidence[:limit]


class AwaitingTitle(BaseModel):
    stage: Literal["awaiting_title"] = "awaiting_title"


class AwaitingConfirmation(BaseModel):
    stage: Literal["awaiting_confirmation"] = "awaiting_confirmation"
    draft: CreationDraft
    unclear_replies: int = 0


class AwaitingEdit(BaseModel):
    stage: Literal["awaiting_edit"] = "awaiting_edit"
    draft: CreationDraft


CreationState = Annotated[Union[AwaitingTitle, AwaitingConfirmation, AwaitingEdit],
                          Field(discriminator="stage")]


class ConversationContext(BaseModel):
    """Cross-turn working memory of one conversation. ``creation`` absent means idle."""
    last_search_query: Optional[str] = None
    last_event_ids: List[str] = Field(default_factory=list)
    found_events_for_registration: List[EventCandidate] = Field(default_factory=list)
    creation: Optional[CreationState] = None

    @classmethod
    def restore(cls, raw: Optional[dict]) -> "ConversationContext":
        """Load stored context; anything unreadable resets to idle rather than wedging the dialog."""
        if not raw:
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable conversation context: %s", exc.errors()[:3])
            return cls()

    @property
    def waiting_for_confirmation(self) -> bool:
        return isinstance(self.creation, AwaitingConfirmation)

    @property
    def draft(self) -> Optional[CreationDraft]:
        return getattr(self.creation, "draft", None)

    def clear_creation(self) -> None:
        self.creation = None

    def remember_event(self, event_id: str) -> None:
        ids = [event_id] + [e for e in self.last_event_ids if e != event_id]
        self.last_event_ids = ids[:MAX_LAST_EVENTS]

    def remember_events(self, event_ids: List[str]) -> None:
        for event_id in reversed(event_ids):
            self.remember_event(event_id)

    def summary(self) -> str:
        """Short plain-text view of the context for prompts."""
        parts = []
        if self.last_search_query:
            parts.append(f"last search: {self.last_search_query}")
        if self.last_event_ids:
            parts.append(f"{len(self.last_event_ids)} event(s) in focus")
        if self.found_events_for_registration:
            titles = "; ".join(f"{i}. {c.title}" for i, c in enumerate(self.found_events_for_registration, 1))
            parts.append(f"awaiting registration choice among: {titles}")
        if isinstance(self.creation, AwaitingTitle):
            parts.append("creating an event, waiting for its title")
        elif self.draft is not None:
            parts.append(f"creating event '{self.draft.title}' ({self.creation.stage.replace('_', ' ')})")
        return "; ".join(parts) or "none"
