from typing import Callable, Dict, List, Optional, Tuple

from schemas.events import ChatRecord, PresenceEntry
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Connection id -> join time. Read at disconnect to compute presence."""

    def __init__(self):
        self.presence: Dict[str, PresenceEntry] = {}

    def register(self, connection_id: str) -> PresenceEntry:
        entry = PresenceEntry(connection_id=connection_id)
        self.presence[connection_id] = entry
        logger.debug(f"Registered connection {connection_id} at {entry.connected_at.isoformat()}")
        return entry

    def unregister(self, connection_id: str) -> Optional[PresenceEntry]:
        return self.presence.pop(connection_id, None)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self.presence

    def __len__(self) -> int:
        return len(self.presence)


class RoomDirectory:
    """Room key -> member connection ids in join order.

    A room exists only while it has members. Re-joining the same room
    appends a duplicate entry.
    """

    def __init__(self):
        self.rooms: Dict[str, List[str]] = {}

    def join(self, room_key: str, connection_id: str) -> List[str]:
        """Append a member and return a copy of the resulting member list."""
        members = self.rooms.setdefault(room_key, [])
        members.append(connection_id)
        logger.debug(f"Connection {connection_id} added to room {room_key} ({len(members)} members)")
        return list(members)

    def members(self, room_key: str) -> List[str]:
        return list(self.rooms.get(room_key, []))

    def find_room_of(self, connection_id: str) -> Optional[str]:
        """First room (in room creation order) that contains the connection."""
        for room_key, members in self.rooms.items():
            if connection_id in members:
                return room_key
        return None

    def memberships_of(self, connection_id: str) -> List[Tuple[str, List[str]]]:
        """Snapshot of every room containing the connection, with copied member lists."""
        return [
            (room_key, list(members))
            for room_key, members in self.rooms.items()
            if connection_id in members
        ]

    def remove(self, connection_id: str, room_keys: List[str]) -> List[str]:
        """Drop the connection from the given rooms and delete rooms left empty.

        Returns the keys of deleted rooms.
        """
        deleted = []
        for room_key in room_keys:
            members = self.rooms.get(room_key)
            if members is None:
                continue
            remaining = [member for member in members if member != connection_id]
            if remaining:
                self.rooms[room_key] = remaining
            else:
                del self.rooms[room_key]
                deleted.append(room_key)
                logger.debug(f"Room {room_key} is empty, removed from directory")
        return deleted

    def __contains__(self, room_key: str) -> bool:
        return room_key in self.rooms


class ChatHistoryStore:
    """Room key -> chat records in arrival order.

    History outlives room membership and is never trimmed.
    """

    def __init__(self):
        self.history: Dict[str, List[ChatRecord]] = {}

    def append(self, room_key: str, record: ChatRecord):
        self.history.setdefault(room_key, []).append(record)

    def records(self, room_key: str) -> List[ChatRecord]:
        return list(self.history.get(room_key, []))

    def replay_to(self, room_key: str, connection_id: str, emit: Callable[[ChatRecord], None]) -> int:
        """Hand every stored record for the room to ``emit`` in arrival order."""
        records = self.history.get(room_key, [])
        for record in records:
            emit(record)
        if records:
            logger.debug(f"Replayed {len(records)} chat messages from room {room_key} to {connection_id}")
        return len(records)

    def history_length(self, room_key: str) -> int:
        return len(self.history.get(room_key, []))

    def room_keys(self) -> List[str]:
        return list(self.history.keys())
