from langchain_core.language_models import FakeListChatModel

from eventchat.agents.validator_agent.event_validator import EventValidator
from eventchat.schemas.dialog_schema import IntentExtraction
from eventchat.schemas.event_schema import EventCandidate
from eventchat.test.fakes import FakeExtraction, FakeSearch
from eventchat.utils.text import dedupe_by_title_and_link

FIND_MESSAGE = "Find tech conferences in Bangalore"


def bangalore_results():
    titles = [
        "Bangalore Tech Summit 2025",
        "Bangalore Tech Summit 2025!",
        "Top 10 Conference Planning Tools — A Guide",
        "PyCon India 2025",
        "DevFest Bangalore",
        "AI Expo Bangalore",
        "Cloud Native Meetup Bangalore",
        "Data Summit Bangalore",
    ]
    return [EventCandidate(title=t, link=f"https://events.example/{i}", snippet="Tickets and schedule online.")
            for i, t in enumerate(titles)]


def find_extraction() -> FakeExtraction:
    return FakeExtraction(intents={
        FIND_MESSAGE: IntentExtraction(intent="discovery", category="tech conferences", location="Bangalore"),
    })


async def test_scenario_b_returns_at_most_five_validated_events(db, user, make_engine):
    # After dedup the guide is candidate 2; the classifier leaves it out.
    validator = EventValidator(FakeListChatModel(responses=["[1, 3, 4, 5, 6, 7]"]))
    engine = make_engine(find_extraction(), FakeSearch(events=bangalore_results()), validator=validator)

    result = await engine.process_turn(user, FIND_MESSAGE)

    assert result.intent == "discovery"
    assert "Conference Planning Tools" not in result.reply
    assert result.reply.count("Bangalore Tech Summit 2025") == 1
    assert "5. **Cloud Native Meetup Bangalore**" in result.reply
    assert "Data Summit Bangalore" not in result.reply
    assert result.refresh_events
    assert len(result.event_data["events"]) == 5

    stored = await db.events.find({"user_id": user["id"], "source": "discovered"}).to_list(None)
    assert len(stored) == 5

    doc = await db.conversations.find_one({"session_id": result.session_id})
    assert doc["context"]["last_search_query"] == FIND_MESSAGE
    assert len(doc["context"]["last_event_ids"]) == 5
    assert result.suggestions[0] == "Register for Bangalore Tech Summit 2025"


async def test_discovery_reply_uses_only_title_snippet_and_link(db, user, make_engine):
    candidate = EventCandidate(title="Jazz Night", link="https://jazz.example", snippet="Live jazz trio.",
                               location="Blue Note Club")
    engine = make_engine(find_extraction(), FakeSearch(events=[candidate]))
    result = await engine.process_turn(user, FIND_MESSAGE)
    assert "Jazz Night" in result.reply
    assert "https://jazz.example" in result.reply
    assert "Blue Note Club" not in result.reply


async def test_nothing_found_keeps_search_query_for_follow_ups(db, user, make_engine):
    engine = make_engine(find_extraction(), FakeSearch())
    result = await engine.process_turn(user, FIND_MESSAGE)
    assert "couldn't find" in result.reply
    assert not result.refresh_events
    doc = await db.conversations.find_one({"session_id": result.session_id})
    assert doc["context"]["last_search_query"] == FIND_MESSAGE
    assert await db.events.count_documents({}) == 0


async def test_validator_fallback_keeps_titled_candidates_and_drops_tbd():
    candidates = [
        EventCandidate(title="Rust Meetup", link="https://a.example"),
        EventCandidate(title="Gig", link="https://b.example"),
        EventCandidate(title="Mystery Conference", link="https://c.example", location="TBD"),
        EventCandidate(title="Open Data Day", link="https://d.example", location="Location TBD"),
    ]
    kept = await EventValidator().validate(candidates)
    assert [c.title for c in kept] == ["Rust Meetup"]


async def test_validator_ignores_out_of_range_indices():
    validator = EventValidator(FakeListChatModel(responses=["Keep these: [2, 9, 2, \"x\"]"]))
    candidates = [EventCandidate(title="First Event"), EventCandidate(title="Second Event")]
    kept = await validator.validate(candidates)
    assert [c.title for c in kept] == ["Second Event"]


def test_near_identical_titles_and_shared_links_are_deduplicated():
    items = [
        EventCandidate(title="Tech Summit 2025", link="https://x.example/a"),
        EventCandidate(title="tech summit 2025.", link="https://x.example/b"),
        EventCandidate(title="Another Event", link="https://X.example/a/"),
        EventCandidate(title="Tech Summit 2026 Preview", link="https://x.example/c"),
    ]
    kept = dedupe_by_title_and_link(items)
    assert [i.title for i in kept] == ["Tech Summit 2025", "Tech Summit 2026 Preview"]
