from datetime import timedelta

import httpx
from langchain_core.language_models import FakeListChatModel

from eventchat.agents.chat_agent.chat_agent import (
    DOMAIN_LOCK_MESSAGE, TECHNICAL_DIFFICULTIES, ChatAgent, parse_selection,
)
from eventchat.agents.chat_agent.confirmation import EDIT, PROCEED, UNCLEAR
from eventchat.agents.chat_agent.suggestions import clean_suggestions, fallback_suggestions
from eventchat.agents.extraction_agent.extraction_agent import ExtractionAgent
from eventchat.agents.location_agent.location_agent import LocationAgent
from eventchat.agents.notification_agent.email_sender import EmailSender, SendResult, render
from eventchat.agents.notification_agent.reminder_dispatcher import ReminderDispatcher
from eventchat.agents.search_agent.search_agent import SearchClient, build_event_query, is_noise_title
from eventchat.schemas.event_schema import EventCandidate, EventCreate
from eventchat.utils.dates import utcnow


def llm(*responses):
    return FakeListChatModel(responses=list(responses))


# --- search ---

def provider_transport(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host == "serpapi.com":
            return httpx.Response(500, json={"error": "upstream"})
        return httpx.Response(200, json={"organic": [
            {"title": "Jazz Festival 2025", "link": "https://jazz.example", "snippet": "Three days of jazz."},
            {"title": "How to plan a jazz night", "link": "https://blog.example/how"},
            {"title": "Top 10 Event Planning Tools", "link": "https://tools.example"},
            {"title": "ab", "link": "https://short.example"},
            {"title": "jazz festival 2025", "link": "https://other.example"},
        ]})
    return httpx.MockTransport(handler)


async def test_search_falls_back_to_serper_and_drops_noise():
    calls = []
    client = SearchClient(serpapi_key="a", serper_key="b", transport=provider_transport(calls))
    results = await client.search_events("jazz", location="Berlin")
    assert calls == ["serpapi.com", "google.serper.dev"]
    assert [r.title for r in results] == ["Jazz Festival 2025"]
    assert results[0].snippet == "Three days of jazz."


async def test_search_without_keys_returns_nothing():
    assert await SearchClient(serpapi_key=None, serper_key=None).search_events("jazz") == []


def test_event_query_shape():
    query = build_event_query("anything", location="Berlin", category="jazz", event_date="2025-06-01")
    assert query.startswith("jazz events in Berlin 2025-06-01 tickets registration")
    assert "-site:medium.com" in query
    assert is_noise_title("Best practices for meetups")
    assert not is_noise_title("PyCon India 2025")


# --- extraction ---

async def test_malformed_intent_output_reads_as_general():
    agent = ExtractionAgent(llm("I think they want something, not sure."))
    result = await agent.extract_intent("hello there")
    assert result.intent == "general"
    assert result.event_title is None


async def test_intent_json_inside_prose_is_parsed():
    agent = ExtractionAgent(llm('Sure! {"intent": "Create", "eventTitle": "Tech Summit", "location": "TBD", '
                                '"useUserLocation": "false"} Hope that helps.'))
    result = await agent.extract_intent("Create event: Tech Summit")
    assert result.intent == "create"
    assert result.event_title == "Tech Summit"
    assert result.location is None
    assert result.use_user_location is False


async def test_unknown_intent_and_missing_llm_are_general():
    assert (await ExtractionAgent(llm('{"intent": "dance"}')).extract_intent("x")).intent == "general"
    assert (await ExtractionAgent().extract_intent("x")).intent == "general"
    assert (await ExtractionAgent().parse_datetime("tomorrow")).date is None


async def test_web_details_keep_only_stated_values():
    agent = ExtractionAgent(llm('{"date": "2025-03-05", "time": null, "location": "N/A"}'))
    details = await agent.extract_web_details("Tech Summit", [EventCandidate(title="Tech Summit")])
    assert details.date == "2025-03-05"
    assert details.time is None
    assert details.location is None
    assert (await agent.extract_web_details("Tech Summit", [])).date is None


# --- chat ---

async def test_domain_lock_reply_is_returned_verbatim():
    agent = ChatAgent(llm("I am designed exclusively to help with events here! Ask me about one."))
    assert await agent.generate_reply("what's the capital of France?") == DOMAIN_LOCK_MESSAGE


async def test_reply_without_llm_reports_technical_difficulties():
    assert await ChatAgent().generate_reply("hi") == TECHNICAL_DIFFICULTIES


async def test_negative_reply_proceeds_without_ai_call():
    model = llm("edit")
    assert await ChatAgent(model).decide_confirmation("no", "Tech Summit") == PROCEED
    assert model.i == 0


async def test_ai_tier_decides_unclear_replies():
    assert await ChatAgent(llm("Edit.")).decide_confirmation("what do you think?", "Tech Summit") == EDIT
    assert await ChatAgent(llm("proceed")).decide_confirmation("what do you think?", "T") == PROCEED
    assert await ChatAgent(llm("banana")).decide_confirmation("what do you think?", "T") == UNCLEAR
    assert await ChatAgent().decide_confirmation("not", "T") == PROCEED


async def test_disambiguation_and_selection():
    assert await ChatAgent(llm("Discovery.")).disambiguate_intent("and cheaper ones?", "last search: jazz") \
        == "discovery"
    assert await ChatAgent().disambiguate_intent("hmm", "none") == "general"

    options = [EventCandidate(title=t) for t in ("Rock Night", "Jazz Brunch", "Folk Fest")]
    assert await ChatAgent().extract_selection("the second one", options) == 2
    assert await ChatAgent(llm("3")).extract_selection("the folk thing", options) == 3
    assert await ChatAgent(llm("7")).extract_selection("the folk thing", options) is None
    assert parse_selection("register for 12", 5) is None
    assert parse_selection("the last one", 4) == 4


async def test_snippet_summary_never_mentions_dates_or_places():
    results = [EventCandidate(title="Tech Summit", snippet="Keynotes and workshops on March 5, 2025 at 9:00 AM.")]
    summary = await ChatAgent().summarize_snippets("Tech Summit", results)
    assert "Keynotes and workshops" in summary
    assert "March" not in summary
    assert "9:00" not in summary

    model = llm("- A developer conference\n- Venue: Berlin Congress Center\n- Date: 2025-03-05")
    summary = await ChatAgent(model).summarize_snippets("Tech Summit", results)
    assert summary == "- A developer conference"


async def test_suggestions_are_cleaned_and_have_a_fallback():
    agent = ChatAgent(llm('Here you go: ["Register for X", "register for x", "", 5, "Find more"]'))
    assert await agent.suggest("discovery", "reply", "none") == ["Register for X", "Find more"]
    assert await ChatAgent().suggest("discovery", "reply", "none") == []
    assert clean_suggestions("not a list") == []


def test_fallback_suggestion_table():
    assert fallback_suggestions("discovery", event_titles=["A", "B", "C"], location_based=True,
                                has_user_location=True) == ["View results on Map", "Register for A", "Register for B"]
    assert fallback_suggestions("discovery", event_titles=["A"]) == ["Register for A", "Set reminder for A"]
    assert fallback_suggestions("create")[0] == "View in sidebar"
    assert fallback_suggestions("registration")[0] == "Set a reminder"
    assert fallback_suggestions("reminder") == ["View my reminders", "Register for another event"]
    assert fallback_suggestions("general") == ["Show upcoming events", "Create a new event", "View my events"]
    assert fallback_suggestions("discovery") == fallback_suggestions("general")


# --- location ---

async def test_reverse_geocode_reads_city_and_region():
    def handler(request):
        assert request.url.params["apiKey"] == "key"
        return httpx.Response(200, json={"results": [{"town": "Hove", "state": "England", "country": "UK"}]})

    agent = LocationAgent(api_key="key", transport=httpx.MockTransport(handler))
    location = await agent.reverse_geocode(50.8, -0.17)
    assert location.label() == "Hove, England"
    assert location.lat == 50.8


async def test_reverse_geocode_failure_and_missing_key():
    failing = LocationAgent(api_key="key", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    assert await failing.reverse_geocode(1.0, 2.0) is None
    bare = await LocationAgent(api_key=None).reverse_geocode(1.0, 2.0)
    assert bare.label() is None
    assert (bare.lat, bare.lon) == (1.0, 2.0)


# --- notifications ---

async def test_unconfigured_sender_reports_instead_of_raising():
    sender = EmailSender(host=None, username=None, password=None, sender=None)
    result = await sender.send("ada@example.com", "registration", {"title": "Picnic"})
    assert result == SendResult(success=False, error="email not configured")
    assert (await sender.send("", "registration", {})).error == "no recipient"
    assert (await sender.send("ada@example.com", "newsletter", {})).success is False


def test_templates_skip_unknown_values():
    subject, body = render("registration", {"name": "Ada", "title": "Picnic", "when": None,
                                            "where": "Park", "registration_id": "r1"})
    assert subject == "You're registered: Picnic"
    assert "When:" not in body
    assert "Where: Park" in body
    assert "{calendar_link}" not in body


class RecordingSender:
    def __init__(self, success=True):
        self.success = success
        self.sent = []

    async def send(self, recipient, template, data):
        self.sent.append((recipient, template, data["title"]))
        return SendResult(success=self.success, error=None if self.success else "smtp down")


async def test_dispatcher_sends_due_reminders_once(db, user, events):
    event, _ = await events.create_event(EventCreate(title="Picnic"), user["id"])
    now = utcnow()
    await events.create_reminder(user["id"], event.id, now + timedelta(minutes=30), "custom")
    later, _ = await events.create_event(EventCreate(title="Gala"), user["id"])
    await events.create_reminder(user["id"], later.id, now + timedelta(days=2), "custom")

    sender = RecordingSender()
    dispatcher = ReminderDispatcher(events, sender, db.users)
    assert await dispatcher.dispatch_due(now) == 1
    assert sender.sent == [("ada@example.com", "reminder", "Picnic")]
    assert await dispatcher.dispatch_due(now) == 0
    assert await db.reminders.count_documents({"status": "sent"}) == 1


async def test_failed_send_leaves_reminder_pending(db, user, events):
    event, _ = await events.create_event(EventCreate(title="Picnic"), user["id"])
    await events.create_reminder(user["id"], event.id, utcnow(), "custom")
    dispatcher = ReminderDispatcher(events, RecordingSender(success=False), db.users)
    assert await dispatcher.dispatch_due() == 0
    assert await db.reminders.count_documents({"status": "pending"}) == 1
