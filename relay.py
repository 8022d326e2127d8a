import math
import threading
from typing import Any, List, Optional, Protocol

from pydantic import ValidationError

from backend import ChatHistoryStore, ConnectionRegistry, RoomDirectory
from event_keys import CHAT_MESSAGE, JOIN_CALL, SIGNAL, USER_JOINED, USER_LEFT
from logging_config import get_logger
from sanitizer import sanitize_string
from schemas.events import ChatRecord, ClientEvent
from schemas.rooms import RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)


class Emitter(Protocol):
    def emit(self, connection_id: str, event: str, *args: Any) -> None:
        ...


class RelayEngine:
    """Join, signal, chat and disconnect handling for call rooms.

    Owns the connection registry, room directory and chat history. All
    room and chat state is read and mutated under one lock, and every
    emission for a room happens while that lock is held, so members see
    user-joined/user-left/chat-message in the order they were applied.
    ``emitter.emit`` must not block.
    """

    def __init__(self, emitter: Emitter, registry: Optional[ConnectionRegistry] = None,
                 rooms: Optional[RoomDirectory] = None, history: Optional[ChatHistoryStore] = None):
        self.emitter = emitter
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.rooms = rooms if rooms is not None else RoomDirectory()
        self.history = history if history is not None else ChatHistoryStore()
        self._lock = threading.Lock()
        self._handlers = {
            JOIN_CALL: (self.on_join, (str,)),
            SIGNAL: (self.on_signal, (str, object)),
            CHAT_MESSAGE: (self.on_chat_message, (object, object)),
        }

    def on_connect(self, connection_id: str):
        with self._lock:
            self.registry.register(connection_id)
        logger.info(f"Connection {connection_id} registered")

    def on_join(self, connection_id: str, room_key: str):
        with self._lock:
            members = self.rooms.join(room_key, connection_id)
            for member in members:
                self.emitter.emit(member, USER_JOINED, connection_id, members)

            self.history.replay_to(
                room_key,
                connection_id,
                lambda record: self.emitter.emit(connection_id, CHAT_MESSAGE, record.data, record.sender, record.sender_id),
            )
        logger.info(f"Connection {connection_id} joined room {room_key}, members: {members}")

    def on_signal(self, connection_id: str, target_id: str, payload: Any):
        # No membership check: the target may be anywhere, or gone.
        self.emitter.emit(target_id, SIGNAL, connection_id, payload)

    def on_chat_message(self, connection_id: str, data: Any, sender: Any):
        data = sanitize_string(data)
        sender = sanitize_string(sender)

        with self._lock:
            room_key = self.rooms.find_room_of(connection_id)
            if room_key is None:
                logger.debug(f"Discarding chat message from {connection_id}: not in any room")
                return

            self.history.append(room_key, ChatRecord(sender=sender, data=data, sender_id=connection_id))
            for member in self.rooms.members(room_key):
                self.emitter.emit(member, CHAT_MESSAGE, data, sender, connection_id)
        logger.info(f"Message in room {room_key} from {sender} ({connection_id}): {data}")

    def on_disconnect(self, connection_id: str) -> Optional[float]:
        """Remove the connection from every room it joined.

        Returns the online duration in seconds, or None if the connection
        was never registered.
        """
        with self._lock:
            entry = self.registry.unregister(connection_id)
            duration = entry.elapsed() if entry is not None else None

            memberships = self.rooms.memberships_of(connection_id)
            for room_key, members in memberships:
                for member in members:
                    if member != connection_id:
                        self.emitter.emit(member, USER_LEFT, connection_id)
            self.rooms.remove(connection_id, [room_key for room_key, _ in memberships])

        seconds = math.ceil(duration) if duration is not None else "unknown"
        for room_key, _ in memberships:
            logger.info(f"Connection {connection_id} left room {room_key} after {seconds}s online")
        if not memberships:
            logger.info(f"Connection {connection_id} disconnected without joining a room")
        return duration

    def dispatch(self, connection_id: str, raw: str) -> bool:
        """Parse one inbound text frame and route it to its handler.

        Malformed frames are logged and dropped. Returns True if a handler ran.
        """
        try:
            client_event = ClientEvent.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Dropping malformed frame from {connection_id}: {e.error_count()} validation errors")
            return False

        handler = self._handlers.get(client_event.event)
        if handler is None:
            logger.warning(f"Dropping unknown event '{client_event.event}' from {connection_id}")
            return False

        handle, arg_types = handler
        args = client_event.args[:len(arg_types)]
        if len(args) < len(arg_types):
            logger.warning(
                f"Dropping '{client_event.event}' from {connection_id}: expected {len(arg_types)} args, got {len(args)}"
            )
            return False
        for arg, arg_type in zip(args, arg_types):
            if not isinstance(arg, arg_type):
                logger.warning(f"Dropping '{client_event.event}' from {connection_id}: bad argument {arg!r}")
                return False

        handle(connection_id, *args)
        return True

    def room_summaries(self) -> List[RoomSummary]:
        with self._lock:
            return [
                RoomSummary(
                    room_key=room_key,
                    members=self.rooms.members(room_key),
                    history_length=self.history.history_length(room_key),
                )
                for room_key in list(self.rooms.rooms)
            ]

    def room_details(self, room_key: str) -> Optional[RoomDetailsResponse]:
        with self._lock:
            if room_key not in self.rooms and not self.history.history_length(room_key):
                return None
            members = self.rooms.members(room_key)
            return RoomDetailsResponse(
                room_key=room_key,
                members=members,
                member_count=len(members),
                history_length=self.history.history_length(room_key),
            )
