import logging
from datetime import timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pymongo.errors import PyMongoError

from eventchat.agents.notification_agent.email_sender import EmailSender
from eventchat.api.auth import get_current_user
from eventchat.api.dependencies import get_email_sender
from eventchat.schemas.event_schema import EventCreate, EventOut, EventRecord, EventStats, EventUpdate
from eventchat.utils.dates import utcnow
from eventchat.utils.db import get_event_store
from eventchat.utils.errors import EventExistsError, ReminderExistsError
from eventchat.utils.event_store import EVENT_FILTERS, EVENT_SORTS, EventStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

REMIND_LATER_DELAY = timedelta(hours=24)


def _email_data(user: Dict, event: EventRecord) -> Dict:
    return {
        "name": user.get("name", ""),
        "title": event.title,
        "when": event.start_date.strftime("%Y-%m-%d %H:%M UTC") if event.start_date else None,
        "where": event.location,
        "link": event.source_url,
    }


async def _owned_event(event_id: str, user_id: str, events: EventStore) -> EventRecord:
    event = await events.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if event.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return event


@router.get("", response_model=List[EventOut], response_model_by_alias=True)
async def list_events(event_filter: str = Query("all", alias="filter"),
                      category: Optional[str] = Query(None, alias="type"),
                      location: Optional[str] = None,
                      search: Optional[str] = None,
                      sort: Optional[str] = None,
                      limit: int = Query(50, ge=1, le=200),
                      skip: int = Query(0, ge=0),
                      current_user: Dict = Depends(get_current_user),
                      events: EventStore = Depends(get_event_store)):
    if event_filter not in EVENT_FILTERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Unknown filter '{event_filter}'. Use one of: {', '.join(EVENT_FILTERS)}")
    if sort and sort not in EVENT_SORTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Unknown sort '{sort}'. Use one of: {', '.join(EVENT_SORTS)}")
    found = await events.list_events(current_user["id"], event_filter, category=category, location=location,
                                     search=search, sort=sort, limit=limit, skip=skip)
    return await events.annotate(found, current_user["id"])


@router.get("/stats", response_model=EventStats, response_model_by_alias=True)
async def event_stats(current_user: Dict = Depends(get_current_user),
                      events: EventStore = Depends(get_event_store)):
    return await events.stats(current_user["id"])


@router.get("/{event_id}", response_model=EventOut, response_model_by_alias=True)
async def get_event(event_id: str, current_user: Dict = Depends(get_current_user),
                    events: EventStore = Depends(get_event_store)):
    event = await events.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    annotated = await events.annotate([event], current_user["id"])
    return annotated[0]


@router.post("", response_model=EventRecord, response_model_by_alias=True, status_code=status.HTTP_201_CREATED)
async def create_event(payload: EventCreate, current_user: Dict = Depends(get_current_user),
                       events: EventStore = Depends(get_event_store)):
    data = payload.model_copy(update={"source": "user_created"})
    try:
        event, created = await events.create_event(data, current_user["id"])
    except PyMongoError:
        logger.exception("Creating event '%s' failed for user %s", payload.title, current_user["id"])
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create event")
    if not created:
        logger.info("Event '%s' already exists for user %s", event.title, current_user["id"])
    return event


@router.put("/{event_id}", response_model=EventRecord, response_model_by_alias=True)
async def update_event(event_id: str, payload: EventUpdate, current_user: Dict = Depends(get_current_user),
                       events: EventStore = Depends(get_event_store)):
    await _owned_event(event_id, current_user["id"], events)
    try:
        updated = await events.update_event(event_id, current_user["id"], payload)
    except EventExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You already have an event with this title")
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return updated


@router.delete("/{event_id}")
async def delete_event(event_id: str, current_user: Dict = Depends(get_current_user),
                       events: EventStore = Depends(get_event_store)):
    await _owned_event(event_id, current_user["id"], events)
    await events.delete_event(event_id, current_user["id"])
    return {"deleted": True}


@router.post("/{event_id}/save", response_model=EventRecord, response_model_by_alias=True)
async def save_event(event_id: str, background_tasks: BackgroundTasks,
                     current_user: Dict = Depends(get_current_user),
                     events: EventStore = Depends(get_event_store),
                     sender: EmailSender = Depends(get_email_sender)):
    """Copy an event into the caller's discovered list."""
    event, created = await events.save_for_user(event_id, current_user["id"])
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if created:
        background_tasks.add_task(sender.send, current_user.get("email"), "event_saved",
                                  _email_data(current_user, event))
    return event


@router.post("/{event_id}/remind-later")
async def remind_later(event_id: str, background_tasks: BackgroundTasks,
                       current_user: Dict = Depends(get_current_user),
                       events: EventStore = Depends(get_event_store),
                       sender: EmailSender = Depends(get_email_sender)):
    event = await events.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    remind_at = utcnow() + REMIND_LATER_DELAY
    try:
        reminder = await events.create_reminder(current_user["id"], event.id, remind_at, "remind_later")
    except ReminderExistsError:
        return {"success": True, "message": "Reminder already set"}
    background_tasks.add_task(sender.send, current_user.get("email"), "remind_later",
                              _email_data(current_user, event))
    return {"success": True, "message": "We'll remind you in 24 hours",
            "reminderId": reminder.id, "reminderDate": remind_at.isoformat()}
