from typing import Any, Dict, List, Optional, Tuple, TypedDict

from pydantic import BaseModel, Field

from eventchat.schemas.dialog_schema import ConversationContext, IntentExtraction
from eventchat.schemas.event_schema import Notification
from eventchat.schemas.user_schema import UserLocation


class TurnState(TypedDict, total=False):
    """
    State passed between the dialog graph nodes for one user turn.
    ``context`` is a working copy; the engine persists it once the graph finishes.
    """
    # === Input ===
    message: str
    user: Dict[str, Any]
    history: List[Tuple[str, str]]
    coords: Optional[Tuple[float, float]]
    context: ConversationContext

    # === Routing ===
    extraction: IntentExtraction
    intent: str
    search_query: Optional[str]
    user_location: Optional[UserLocation]

    # === Output ===
    reply: str
    refresh_events: bool
    event_data: Optional[Dict[str, Any]]
    event_titles: List[str]
    location_based: bool
    notifications: List[Notification]
    suggestions: List[str]


class TurnResult(BaseModel):
    reply: str
    session_id: str
    suggestions: List[str] = Field(default_factory=list)
    refresh_events: bool = False
    event_data: Optional[Dict[str, Any]] = None
    intent: str = "general"
    notifications: List[Notification] = Field(default_factory=list)
    persisted: bool = True
