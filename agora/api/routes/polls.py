"""
agora.api.routes.polls — Poll reads, votes & manual sweep
==========================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from agora.api.deps import get_engine, get_now
from agora.api.errors import raise_for_result
from agora.services import poll_service

router = APIRouter(prefix="/polls", tags=["polls"])


class PollVoteRequest(BaseModel):
    option_id: int
    username: str


@router.post("/close-expired")
async def close_expired(
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    closures = raise_for_result(
        await poll_service.close_expired_polls_and_notify(engine, now=now)
    )
    return {
        "closed": [c.poll for c in closures],
        "notified": {c.poll.id: list(c.notified) for c in closures},
    }


@router.get("/{poll_id}")
def get_poll(poll_id: int, engine: Engine = Depends(get_engine)):
    return raise_for_result(poll_service.fetch_poll(engine, poll_id))


@router.post("/{poll_id}/vote")
def vote_poll(
    poll_id: int,
    body: PollVoteRequest,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    return raise_for_result(
        poll_service.vote(engine, poll_id, body.option_id, body.username, now=now)
    )
