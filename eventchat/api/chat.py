import logging
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pymongo.errors import PyMongoError

from eventchat.agents.notification_agent.email_sender import EmailSender
from eventchat.api.auth import get_current_user
from eventchat.api.dependencies import get_dialog_engine, get_email_sender
from eventchat.schemas.chat_schema import ChatRequest, ChatResponse
from eventchat.utils.text import sanitize
from eventchat.workflow.dialog_engine import DialogEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def chat(payload: ChatRequest, background_tasks: BackgroundTasks,
               current_user: Dict = Depends(get_current_user),
               engine: DialogEngine = Depends(get_dialog_engine),
               sender: EmailSender = Depends(get_email_sender)):
    """Process one chat turn and return the reply with quick-reply suggestions."""
    message = sanitize(payload.message)
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")

    try:
        result = await engine.process_turn(current_user, message, payload.session_id, payload.lat, payload.lon)
    except PyMongoError:
        logger.exception("Chat turn failed for user %s session %s", current_user["id"], payload.session_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail="Something went wrong while processing your message. Please try again.")

    for notification in result.notifications:
        background_tasks.add_task(sender.send, notification.recipient, notification.template, notification.data)

    return ChatResponse(
        success=True,
        reply=result.reply,
        session_id=result.session_id,
        suggestions=result.suggestions,
        refresh_events=result.refresh_events,
        event_data=result.event_data,
    )
