from pydantic import Field, PrivateAttr
from typing import Any, Dict, List, Optional, Literal, Tuple
from datetime import datetime

from eventchat.schemas.api_schema import ApiModel
from eventchat.schemas.dialog_schema import ConversationContext, Intent
from eventchat.utils.dates import utcnow


class ChatMessage(ApiModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Conversation(ApiModel):
    """One dialog thread. ``messages`` is append-only; ``version`` guards concurrent saves."""
    session_id: str
    user_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    last_intent: Optional[Intent] = None
    context: ConversationContext = Field(default_factory=ConversationContext)
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    _persisted_count: int = PrivateAttr(default=0)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Conversation":
        conversation = cls(
            session_id=doc["session_id"],
            user_id=doc["user_id"],
            messages=[ChatMessage.model_validate(m) for m in doc.get("messages", [])],
            last_intent=doc.get("last_intent"),
            context=ConversationContext.restore(doc.get("context")),
            version=doc.get("version", 0),
            created_at=doc.get("created_at") or utcnow(),
            updated_at=doc.get("updated_at") or utcnow(),
        )
        conversation._persisted_count = len(conversation.messages)
        return conversation

    @property
    def is_new(self) -> bool:
        return self.version == 0

    @property
    def unsaved_messages(self) -> List[ChatMessage]:
        return self.messages[self._persisted_count:]

    def mark_persisted(self) -> None:
        self._persisted_count = len(self.messages)

    def append(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        return message

    def history(self, limit: int) -> List[Tuple[str, str]]:
        """Last ``limit`` messages as (role, text) tuples for chat prompts."""
        recent = self.messages[-limit:] if limit > 0 else []
        return [("human" if m.role == "user" else "ai", m.content) for m in recent]


# --- HTTP payloads ---

class ChatRequest(ApiModel):
    session_id: Optional[str] = None
    message: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None


class ChatResponse(ApiModel):
    success: bool = True
    reply: str
    session_id: str
    suggestions: List[str] = Field(default_factory=list)
    refresh_events: bool = False
    event_data: Optional[Dict[str, Any]] = None


class ConversationPreview(ApiModel):
    session_id: str
    preview: str = ""
    message_count: int = 0
    last_intent: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConversationOut(ApiModel):
    session_id: str
    messages: List[ChatMessage]
    last_intent: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ConversationSave(ApiModel):
    session_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    last_intent: Optional[Intent] = None
