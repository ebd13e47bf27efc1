"""
wellness.py - Mood, journal, chat and suggestion endpoints

Every endpoint here requires a signed-in user (see auth.get_current_user_id)
and delegates to `WellnessService`; the handlers only translate HTTP input
into service calls. Errors raised by the service carry their own HTTP status
and are rendered as `{"error": ...}` by the handlers registered in main.py.

Routes (all under /api):
- POST/GET /mood, GET /mood/series
- POST/GET /journal, GET /journal/prompts
- POST/GET /chat
- GET /insights, /activities, /recommendations
- GET/PUT /preferences
"""

import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from .auth import get_current_user_id
from .models import (
    ActivitySuggestion,
    ChatCreate,
    ChatExchange,
    ChatMessage,
    ContentRecommendation,
    DailySeriesPoint,
    JournalCreate,
    JournalEntry,
    JournalPrompts,
    MoodCreate,
    MoodSample,
    PreferencesUpdate,
    UserPreferences,
)
from .service import WellnessService, build_service_from_env

_logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


# -------------------------
# Dependency helpers
# -------------------------
@lru_cache(maxsize=1)
def get_wellness_service() -> WellnessService:
    """Build the service (Firestore storage + configured providers) once per process."""
    _logger.info("Building wellness service from environment")
    return build_service_from_env()


# -------------------------
# Mood
# -------------------------
@router.post("/mood", response_model=MoodSample, status_code=201)
async def create_mood(
    payload: MoodCreate,
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.log_mood(user_id, payload.mood_value, payload.note_text)


@router.get("/mood", response_model=List[MoodSample])
async def list_mood(
    range_name: Optional[str] = Query(None, alias="range"),
    limit: Optional[int] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.list_mood(user_id, range_name=range_name, limit=limit)


@router.get("/mood/series", response_model=List[DailySeriesPoint])
async def mood_series(
    days: int = Query(7),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.mood_series(user_id, days=days)


# -------------------------
# Journal
# -------------------------
@router.post("/journal", response_model=JournalEntry, status_code=201)
async def create_journal_entry(
    payload: JournalCreate,
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.create_journal_entry(user_id, payload.body_text, payload.title_text)


@router.get("/journal", response_model=List[JournalEntry])
async def list_journal_entries(
    limit: Optional[int] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.list_journal_entries(user_id, limit=limit)


@router.get("/journal/prompts", response_model=JournalPrompts)
async def journal_prompts(
    mood: int = Query(3),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.journal_prompts(user_id, mood=mood)


# -------------------------
# Chat
# -------------------------
@router.post("/chat", response_model=ChatExchange)
async def send_chat_message(
    payload: ChatCreate,
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.send_chat_message(user_id, payload.body_text)


@router.get("/chat", response_model=List[ChatMessage])
async def list_chat_messages(
    limit: Optional[int] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.list_chat_messages(user_id, limit=limit)


# -------------------------
# Insights and suggestions
# -------------------------
@router.get("/insights")
async def insights(
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.insights(user_id)


@router.get("/activities", response_model=List[ActivitySuggestion])
async def activities(
    mood: int = Query(3),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.activities(user_id, mood=mood)


@router.get("/recommendations", response_model=List[ContentRecommendation])
async def recommendations(
    mood: int = Query(3),
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.recommendations(user_id, mood=mood)


# -------------------------
# Preferences
# -------------------------
@router.get("/preferences", response_model=UserPreferences)
async def get_preferences(
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.get_preferences(user_id)


@router.put("/preferences", response_model=UserPreferences)
async def update_preferences(
    payload: PreferencesUpdate,
    user_id: str = Depends(get_current_user_id),
    service: WellnessService = Depends(get_wellness_service),
):
    return await service.update_preferences(user_id, payload)
