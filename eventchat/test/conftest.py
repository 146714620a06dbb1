from typing import Callable, Dict, Optional

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from eventchat.agents.chat_agent.chat_agent import ChatAgent
from eventchat.agents.location_agent.location_agent import LocationAgent
from eventchat.agents.validator_agent.event_validator import EventValidator
from eventchat.test.fakes import FakeExtraction, FakeSearch
from eventchat.utils.chat_history import ConversationStore
from eventchat.utils.dates import utcnow
from eventchat.utils.db import ensure_indexes
from eventchat.utils.event_store import EventStore
from eventchat.utils.session_lock import SessionLocks
from eventchat.utils.user_store import UserStore
from eventchat.workflow.agent_nodes import TurnNodes
from eventchat.workflow.creation_flow import CreationFlow
from eventchat.workflow.dialog_engine import DialogEngine
from eventchat.workflow.discovery_flow import DiscoveryFlow
from eventchat.workflow.graph_builder import build_graph
from eventchat.workflow.registration_flow import RegistrationFlow
from eventchat.workflow.reminder_flow import ReminderFlow


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["eventchat_test"]


@pytest.fixture
async def db(mongo_db):
    await ensure_indexes(mongo_db)
    return mongo_db


@pytest.fixture
async def user(db) -> Dict:
    result = await db.users.insert_one({
        "username": "ada", "name": "Ada Lovelace", "email": "ada@example.com",
        "hashed_password": "x", "created_at": utcnow(),
    })
    return {"id": str(result.inserted_id), "username": "ada", "name": "Ada Lovelace",
            "email": "ada@example.com"}


@pytest.fixture
def other_user_id() -> str:
    return str(ObjectId())


@pytest.fixture
def events(db) -> EventStore:
    return EventStore(db)


@pytest.fixture
def conversations(db) -> ConversationStore:
    return ConversationStore(db)


@pytest.fixture
def make_engine(mongo_db) -> Callable[..., DialogEngine]:
    """Engine wired with fake extraction/search and real, LLM-less chat and validator agents."""

    def _make(extraction: FakeExtraction, search: FakeSearch, chat: Optional[ChatAgent] = None,
              validator: Optional[EventValidator] = None) -> DialogEngine:
        chat = chat or ChatAgent()
        store = EventStore(mongo_db)
        nodes = TurnNodes(chat, extraction, LocationAgent(api_key=None), UserStore(mongo_db))
        graph = build_graph(
            nodes,
            CreationFlow(chat, extraction, search, store),
            DiscoveryFlow(search, validator or EventValidator(), store),
            RegistrationFlow(chat, extraction, search, store),
            ReminderFlow(extraction, store),
        )
        return DialogEngine(graph, ConversationStore(mongo_db), SessionLocks())

    return _make
