from typing import List, Optional, Sequence

MAX_SUGGESTIONS = 3


def fallback_suggestions(intent: Optional[str], *, event_titles: Sequence[str] = (),
                         location_based: bool = False, has_user_location: bool = False) -> List[str]:
    """Quick replies used when the AI suggestion call fails or returns nothing usable."""
    if intent == "discovery" and event_titles:
        items = []
        if location_based and has_user_location:
            items.append("View results on Map")
        items.extend(f"Register for {title}" for title in event_titles[:2])
        items.append(f"Set reminder for {event_titles[0]}")
        return items[:MAX_SUGGESTIONS]
    if intent == "create":
        return ["View in sidebar", "Create another event", "Find similar events"]
    if intent == "registration":
        return ["Set a reminder", "View my registered events", "Find more events"]
    if intent == "reminder":
        return ["View my reminders", "Register for another event"]
    return ["Show upcoming events", "Create a new event", "View my events"]


def clean_suggestions(raw: object) -> List[str]:
    """Keep up to three distinct non-empty strings from an AI-provided list."""
    if not isinstance(raw, list):
        return []
    seen, items = set(), []
    for value in raw:
        if not isinstance(value, str):
            continue
        text = value.strip().strip('"').strip()
        if text and text.lower() not in seen and len(text) <= 80:
            seen.add(text.lower())
            items.append(text)
        if len(items) == MAX_SUGGESTIONS:
            break
    return items
