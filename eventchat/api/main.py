import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from eventchat.agents.notification_agent.reminder_dispatcher import ReminderDispatcher
from eventchat.api.auth import router as auth_router
from eventchat.api.chat import router as chat_router
from eventchat.api.conversations import router as conversations_router
from eventchat.api.dependencies import get_email_sender, reset_dependencies
from eventchat.api.events import router as events_router
from eventchat.utils.config import CORS_ORIGINS, LOG_LEVEL, REMINDER_DISPATCH_INTERVAL_SECONDS
from eventchat.utils.db import close_mongo_connection, connect_to_mongo, get_db
from eventchat.utils.event_store import EventStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    dispatcher_task = None
    if REMINDER_DISPATCH_INTERVAL_SECONDS > 0:
        db = get_db()
        dispatcher = ReminderDispatcher(EventStore(db), get_email_sender(), db.users)
        dispatcher_task = asyncio.create_task(dispatcher.run_forever(REMINDER_DISPATCH_INTERVAL_SECONDS))
    logger.info("Server initialization complete.")
    try:
        yield
    finally:
        if dispatcher_task is not None:
            dispatcher_task.cancel()
            try:
                await dispatcher_task
            except asyncio.CancelledError:
                pass
        await close_mongo_connection()
        reset_dependencies()
        logger.info("Server shutdown complete.")


app = FastAPI(title="Event Chat API", lifespan=lifespan)

origins = [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/auth")
app.include_router(chat_router, prefix="/api/chat")
app.include_router(conversations_router, prefix="/api/chat/history")
app.include_router(events_router, prefix="/api/events")


@app.get("/")
def read_root():
    return {"message": "Welcome to the Event Chat API"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("eventchat.api.main:app", host="0.0.0.0", port=8000, reload=True)
