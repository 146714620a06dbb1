from typing import Dict, List, Optional

from eventchat.schemas.dialog_schema import IntentExtraction, ParsedDateTime, RegistrantDetails, WebEventDetails
from eventchat.schemas.event_schema import EventCandidate


class FakeExtraction:
    """Scripted stand-in for ExtractionAgent. Unknown messages read as general."""

    def __init__(self, intents: Optional[Dict[str, IntentExtraction]] = None,
                 web: Optional[WebEventDetails] = None,
                 parsed: Optional[ParsedDateTime] = None,
                 registrant: Optional[RegistrantDetails] = None):
        self.intents = intents or {}
        self.web = web or WebEventDetails()
        self.parsed = parsed or ParsedDateTime()
        self.registrant = registrant or RegistrantDetails()
        self.intent_calls: List[str] = []
        self.web_calls: List[str] = []

    async def extract_intent(self, message, history=(), context_summary="none", today=None):
        self.intent_calls.append(message)
        return self.intents.get(message, IntentExtraction())

    async def extract_web_details(self, title, results):
        self.web_calls.append(title)
        return self.web

    async def parse_datetime(self, message, today=None):
        return self.parsed

    async def extract_registrant(self, message):
        return self.registrant


class FakeSearch:
    def __init__(self, events: Optional[List[EventCandidate]] = None,
                 details: Optional[List[EventCandidate]] = None):
        self.events = events or []
        self.details = details or []
        self.event_queries: List[str] = []
        self.detail_queries: List[str] = []

    async def search_events(self, query, location=None, category=None, event_date=None):
        self.event_queries.append(query)
        return list(self.events)

    async def search_event_details(self, title):
        self.detail_queries.append(title)
        return list(self.details)

