"""
agora.api.routes.challenges — Challenge progress
=================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from agora.api.deps import get_engine, get_now
from agora.api.errors import raise_for_result
from agora.database.models import ChallengeType
from agora.services import challenge_service

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.get("/{username}")
def get_user_challenges(username: str, engine: Engine = Depends(get_engine)):
    return raise_for_result(challenge_service.fetch_user_challenges(engine, username))


@router.put("/progress/{challenge_type}/{username}")
async def increment_progress(
    challenge_type: ChallengeType,
    username: str,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    return raise_for_result(
        await challenge_service.increment_progress(engine, username, challenge_type, now=now)
    )
