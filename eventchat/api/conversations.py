from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from eventchat.api.auth import get_current_user
from eventchat.schemas.chat_schema import ConversationOut, ConversationPreview, ConversationSave
from eventchat.utils.chat_history import ConversationStore
from eventchat.utils.db import get_conversation_store

router = APIRouter(tags=["conversations"])


def _out(conversation) -> ConversationOut:
    return ConversationOut(
        session_id=conversation.session_id,
        messages=conversation.messages,
        last_intent=conversation.last_intent,
        context=conversation.context.model_dump(mode="json", exclude_none=True),
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


@router.get("", response_model=List[ConversationPreview], response_model_by_alias=True)
async def list_conversations(current_user: Dict = Depends(get_current_user),
                             store: ConversationStore = Depends(get_conversation_store)):
    """Conversation previews of the caller, most recently updated first."""
    return await store.list_for_user(current_user["id"])


@router.get("/{session_id}", response_model=ConversationOut, response_model_by_alias=True)
async def get_conversation(session_id: str, current_user: Dict = Depends(get_current_user),
                           store: ConversationStore = Depends(get_conversation_store)):
    conversation = await store.load(session_id, current_user["id"])
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return _out(conversation)


@router.post("", response_model=ConversationOut, response_model_by_alias=True)
async def save_conversation(payload: ConversationSave, current_user: Dict = Depends(get_current_user),
                            store: ConversationStore = Depends(get_conversation_store)):
    if not payload.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sessionId is required")
    if await store.session_taken(payload.session_id, current_user["id"]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    conversation = await store.replace_messages(payload.session_id, current_user["id"], payload.messages,
                                                payload.last_intent)
    return _out(conversation)


@router.delete("/{session_id}")
async def delete_conversation(session_id: str, current_user: Dict = Depends(get_current_user),
                              store: ConversationStore = Depends(get_conversation_store)):
    if not await store.delete(session_id, current_user["id"]):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return {"deleted": True}
