"""
Turn processor: one user message in, one reply out.

The stored context is copied, the graph works on the copy, and the conversation is written
once at the end. A turn that fails half way therefore leaves the stored dialog as it was.
Turns of the same session are serialized by a per-session lock.
"""
import logging
import uuid
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from eventchat.agents.chat_agent.chat_agent import ChatAgent
from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.agents.llm import create_llm
from eventchat.agents.location_agent.location_agent import LocationAgent
from eventchat.agents.search_agent.search_agent import SearchClient
from eventchat.agents.validator_agent.event_validator import EventValidator
from eventchat.schemas.chat_schema import Conversation
from eventchat.utils.chat_history import ConversationStore
from eventchat.utils.event_store import EventStore
from eventchat.utils.session_lock import SessionLocks
from eventchat.utils.user_store import UserStore
from eventchat.workflow.agent_nodes import TurnNodes
from eventchat.workflow.app_state import TurnResult, TurnState
from eventchat.workflow.creation_flow import CreationFlow
from eventchat.workflow.discovery_flow import DiscoveryFlow
from eventchat.workflow.graph_builder import build_graph
from eventchat.workflow.registration_flow import RegistrationFlow
from eventchat.workflow.reminder_flow import ReminderFlow

logger = logging.getLogger(__name__)

HISTORY_MESSAGES = 10


class DialogEngine:
    def __init__(self, graph, conversations: ConversationStore, locks: Optional[SessionLocks] = None):
        self.graph = graph
        self.conversations = conversations
        self.locks = locks or SessionLocks()

    async def _open(self, session_id: Optional[str], user_id: str) -> Conversation:
        if session_id:
            conversation = await self.conversations.load(session_id, user_id)
            if conversation is not None:
                return conversation
            if await self.conversations.session_taken(session_id, user_id):
                logger.warning("Session %s belongs to another user; starting a new one for %s", session_id, user_id)
                session_id = None
        return Conversation(session_id=session_id or str(uuid.uuid4()), user_id=user_id)

    async def process_turn(self, user: Dict[str, Any], message: str, session_id: Optional[str] = None,
                           lat: Optional[float] = None, lon: Optional[float] = None) -> TurnResult:
        lock_key = session_id or f"new:{uuid.uuid4()}"
        async with self.locks.hold(lock_key):
            conversation = await self._open(session_id, user["id"])
            history = conversation.history(HISTORY_MESSAGES)
            conversation.append("user", message)

            state: TurnState = {
                "message": message,
                "user": user,
                "history": history,
                "coords": (lat, lon) if lat is not None and lon is not None else None,
                "context": conversation.context.model_copy(deep=True),
            }
            final = await self.graph.ainvoke(state)

            reply = final.get("reply") or ""
            intent = final.get("intent", "general")
            conversation.context = final["context"]
            conversation.last_intent = intent
            conversation.append("assistant", reply)
            persisted = await self.conversations.save(conversation)
            if not persisted:
                logger.error("Turn reply returned without durable state session=%s user=%s",
                             conversation.session_id, user["id"])

        return TurnResult(
            reply=reply,
            session_id=conversation.session_id,
            suggestions=final.get("suggestions", []),
            refresh_events=final.get("refresh_events", False),
            event_data=final.get("event_data"),
            intent=intent,
            notifications=final.get("notifications", []),
            persisted=persisted,
        )


def build_dialog_engine(db: AsyncIOMotorDatabase, locks: Optional[SessionLocks] = None) -> DialogEngine:
    """Wire the production agents against ``db``."""
    llm = create_llm(temperature=0.3)
    classifier_llm = create_llm(temperature=0.0, max_tokens=300)
    chat = ChatAgent(llm, classifier_llm)
    extraction = ExtractionAgent(classifier_llm)
    search = SearchClient()
    events = EventStore(db)
    nodes = TurnNodes(chat, extraction, LocationAgent(), UserStore(db))
    graph = build_graph(
        nodes,
        CreationFlow(chat, extraction, search, events),
        DiscoveryFlow(search, EventValidator(classifier_llm), events),
        RegistrationFlow(chat, extraction, search, events),
        ReminderFlow(extraction, events),
    )
    return DialogEngine(graph, ConversationStore(db), locks)
