from pydantic import BaseModel


class RoomSummary(BaseModel):
    room_key: str
    members: list[str]
    history_length: int


class RoomDetailsResponse(BaseModel):
    room_key: str
    members: list[str]
    member_count: int
    history_length: int
