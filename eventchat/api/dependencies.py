from typing import Optional

from eventchat.agents.notification_agent.email_sender import EmailSender
from eventchat.utils.db import get_db
from eventchat.workflow.dialog_engine import DialogEngine, build_dialog_engine

# One engine per process so its session locks are shared by every request.
_engine: Optional[DialogEngine] = None
_sender: Optional[EmailSender] = None


def get_dialog_engine() -> DialogEngine:
    global _engine
    if _engine is None:
        _engine = build_dialog_engine(get_db())
    return _engine


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        _sender = EmailSender()
    return _sender


def reset_dependencies() -> None:
    """Forget the cached engine, e.g. after the database connection is replaced."""
    global _engine, _sender
    _engine = None
    _sender = None
