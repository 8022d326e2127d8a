from typing import List

from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("", response_model=List[RoomSummary])
async def list_rooms(request: Request):
    summaries = request.app.state.relay_engine.room_summaries()
    logger.debug(f"Listing {len(summaries)} rooms")
    return summaries


@rooms_router.get("/{room_key:path}", response_model=RoomDetailsResponse)
async def get_room_details(room_key: str, request: Request):
    """
    Get the current members and stored chat count of a room.

    A room whose members all left but whose chat history remains is still
    reported, with an empty member list.
    """
    details = request.app.state.relay_engine.room_details(room_key)
    if details is None:
        logger.info(f"Room details failed: Room {room_key} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return details
