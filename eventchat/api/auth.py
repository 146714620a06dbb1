import logging
from datetime import timedelta
from typing import Dict

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError
from pymongo.errors import DuplicateKeyError, PyMongoError

from eventchat.schemas.user_schema import Token, UserCreate, UserOut
from eventchat.utils import security
from eventchat.utils.chat_history import ConversationStore
from eventchat.utils.config import ACCESS_TOKEN_EXPIRE_MINUTES
from eventchat.utils.dates import utcnow
from eventchat.utils.db import get_conversation_store, get_db, get_event_store
from eventchat.utils.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

CREDENTIALS_ERROR = "Could not validate credentials"


def _user_out(doc: Dict) -> Dict:
    return {
        "id": str(doc["_id"]),
        "username": doc["username"],
        "name": doc["name"],
        "email": doc["email"],
        "created_at": doc["created_at"],
        "last_location": doc.get("last_location"),
    }


async def get_current_user(token: str = Depends(oauth2_scheme)) -> Dict:
    try:
        payload = security.decode_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=CREDENTIALS_ERROR)
        object_id = ObjectId(user_id)
    except (JWTError, InvalidId, TypeError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=CREDENTIALS_ERROR)

    user_doc = await get_db().users.find_one({"_id": object_id})
    if not user_doc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return _user_out(user_doc)


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(user: UserCreate):
    users = get_db().users
    existing = await users.find_one({"$or": [{"email": user.email}, {"username": user.username}]})
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail="User with given email or username already exists")

    doc = {
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "hashed_password": security.hash_password(user.password),
        "created_at": utcnow(),
    }
    try:
        result = await users.insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail="User with given email or username already exists")
    except PyMongoError:
        logger.exception("Registration failed for %s", user.username)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    doc["_id"] = result.inserted_id
    return _user_out(doc)


@router.post("/token", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    login_value = form_data.username
    user_doc = await get_db().users.find_one({"$or": [{"email": login_value}, {"username": login_value}]})
    if not user_doc or not security.verify_password(form_data.password, user_doc.get("hashed_password", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Incorrect email/username or password",
                            headers={"WWW-Authenticate": "Bearer"})

    access_token = security.create_access_token(
        subject=str(user_doc["_id"]),
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserOut)
async def read_users_me(current_user: Dict = Depends(get_current_user)):
    """Returns the details of the currently authenticated user."""
    return current_user


@router.delete("/me", status_code=status.HTTP_200_OK)
async def delete_user_account(current_user: Dict = Depends(get_current_user),
                              conversations: ConversationStore = Depends(get_conversation_store),
                              events: EventStore = Depends(get_event_store)):
    """Deletes the account with its conversations, events, registrations and reminders."""
    user_id = current_user["id"]
    try:
        removed = await conversations.delete_for_user(user_id)
        await events.delete_for_user(user_id)
        result = await get_db().users.delete_one({"_id": ObjectId(user_id)})
    except PyMongoError:
        logger.exception("Account deletion failed for user %s", user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail="Failed to delete account")

    if result.deleted_count == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found or already deleted")
    logger.info("Deleted user %s and %d conversation(s)", user_id, removed)
    return {"message": "Account successfully deleted. All associated data has been removed."}
