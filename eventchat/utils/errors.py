"""Domain errors raised by the stores and handled by the dialog flows and routers."""


class PersistenceError(Exception):
    """A write could not be completed after retries."""


class ConversationConflictError(PersistenceError):
    """The conversation document changed or vanished underneath a save."""


class DuplicateRegistrationError(Exception):
    """The user is already registered for this event."""

    def __init__(self, user_id: str, event_id: str):
        super().__init__(f"user {user_id} is already registered for event {event_id}")
        self.user_id = user_id
        self.event_id = event_id


class ReminderExistsError(Exception):
    """A pending reminder already exists for this user and event."""

    def __init__(self, user_id: str, event_id: str, reminder_type: str | None = None):
        super().__init__(f"pending reminder already set for user {user_id} on event {event_id}")
        self.user_id = user_id
        self.event_id = event_id
        self.reminder_type = reminder_type


class EventExistsError(Exception):
    """Another event of the same owner and source already has this title or link."""

    def __init__(self, user_id: str, title: str):
        super().__init__(f"user {user_id} already has an event titled {title!r}")
        self.user_id = user_id
        self.title = title
