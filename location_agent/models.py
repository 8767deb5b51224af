import datetime
from dataclasses import asdict, dataclass
from enum import Enum


def utc_timestamp(moment: datetime.datetime | None = None) -> str:
    if moment is None:
        moment = datetime.datetime.now(datetime.timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    moment = moment.astimezone(datetime.timezone.utc)
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Fix:
    latitude: float
    longitude: float
    altitude: float
    horizontalAccuracy: float
    timestamp: str

    def __str__(self):
        return f"Location ({round(self.latitude, 5)}, {round(self.longitude, 5)})"

    def as_dict(self):
        return asdict(self)


class ListenerState(Enum):
    SETUP = "setup"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class ListenerStateError(RuntimeError):
    pass


LISTENER_TRANSITIONS = {
    ListenerState.SETUP: {
        ListenerState.READY,
        ListenerState.FAILED,
        ListenerState.CANCELLED,
    },
    ListenerState.READY: {ListenerState.FAILED, ListenerState.CANCELLED},
    ListenerState.FAILED: {ListenerState.SETUP, ListenerState.CANCELLED},
    ListenerState.CANCELLED: {ListenerState.SETUP},
}


def transition(current: ListenerState, target: ListenerState) -> ListenerState:
    """
    Validate a listener state change.

    Args:
        current (ListenerState): The state the listener is in.
        target (ListenerState): The requested state.

    Returns:
        ListenerState: The new state.

    Raises:
        ListenerStateError: If the listener cannot move from `current` to `target`.
    """
    if target not in LISTENER_TRANSITIONS[current]:
        raise ListenerStateError(f"Invalid listener transition: {current} -> {target}")
    return target


class ConnectionState(Enum):
    ACCEPTED = "accepted"
    READING = "reading"
    RESPONDING = "responding"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value
