import time
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class ClientEvent(BaseModel):
    """A single inbound frame: ``{"event": "<name>", "args": [...]}``."""
    event: str
    args: List[Any] = Field(default_factory=list)


class ServerEvent(BaseModel):
    event: str
    args: List[Any] = Field(default_factory=list)


class ChatRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender: str
    data: str
    sender_id: str


class PresenceEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    connection_id: str
    connected_at: datetime = Field(default_factory=datetime.now)
    # monotonic clock reading, used only for durations
    started_at: float = Field(default_factory=time.monotonic)

    def elapsed(self) -> float:
        """Seconds since the connection was registered."""
        return max(0.0, time.monotonic() - self.started_at)
