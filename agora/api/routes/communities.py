"""
agora.api.routes.communities — Membership & community content
==============================================================

Each placement route commits first and then fans out the matching
community notification to the members.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from agora.api.deps import get_engine, get_now
from agora.api.errors import raise_for_result
from agora.database.engine import run_db
from agora.database.models import NotificationType
from agora.services import community_service
from agora.services.notification_service import announce
from agora.services.recipients import NotificationEvent

router = APIRouter(prefix="/communities", tags=["communities"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CommunityCreate(BaseModel):
    name: str
    description: str | None = None


class JoinRequest(BaseModel):
    username: str


class PollCreate(BaseModel):
    title: str
    options: list[str]
    created_by: str
    poll_due_date: datetime
    poll_date_time: datetime | None = None


class ArticleCreate(BaseModel):
    title: str
    body: str
    created_by: str | None = None


class ArticleUpdate(BaseModel):
    title: str
    body: str


async def _fan_out(engine: Engine, notification_type: NotificationType, source_id: int, now):
    report = await announce(engine, NotificationEvent(notification_type, source_id), now=now)
    return list(report.recipients) if report else []


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_community(body: CommunityCreate, engine: Engine = Depends(get_engine)):
    return raise_for_result(
        community_service.create_community(engine, body.name, body.description)
    )


@router.get("")
def list_communities(engine: Engine = Depends(get_engine)):
    return raise_for_result(community_service.list_communities(engine))


@router.get("/{community_id}")
def get_community(community_id: int, engine: Engine = Depends(get_engine)):
    community = raise_for_result(community_service.fetch_community(engine, community_id))
    content = raise_for_result(community_service.list_community_content(engine, community_id))
    return {"community": community, **content}


@router.put("/{community_id}/join")
def join(community_id: int, body: JoinRequest, engine: Engine = Depends(get_engine)):
    return raise_for_result(
        community_service.join_community(engine, community_id, body.username)
    )


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------
@router.put("/{community_id}/questions/{question_id}")
async def add_question(
    community_id: int,
    question_id: int,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    raise_for_result(await run_db(
        community_service.add_question_to_community, engine, community_id, question_id,
    ))
    notified = await _fan_out(engine, NotificationType.NEW_QUESTION, question_id, now)
    return {"question_id": question_id, "community_id": community_id, "notified": notified}


@router.post("/{community_id}/polls", status_code=201)
async def add_poll(
    community_id: int,
    body: PollCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    poll = raise_for_result(await run_db(
        community_service.save_poll_to_community,
        engine,
        community_id,
        title=body.title,
        options=body.options,
        created_by=body.created_by,
        poll_date_time=body.poll_date_time or now,
        poll_due_date=body.poll_due_date,
    ))
    notified = await _fan_out(engine, NotificationType.NEW_POLL, poll.id, now)
    return {"poll": poll, "notified": notified}


@router.post("/{community_id}/articles", status_code=201)
async def add_article(
    community_id: int,
    body: ArticleCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    article = raise_for_result(await run_db(
        community_service.save_article_to_community,
        engine,
        community_id,
        title=body.title,
        body=body.body,
        created_by=body.created_by,
        latest_edit_date=now,
    ))
    notified = await _fan_out(engine, NotificationType.NEW_ARTICLE, article.id, now)
    return {"article": article, "notified": notified}


@router.get("/articles/{article_id}")
def get_article(article_id: int, engine: Engine = Depends(get_engine)):
    return raise_for_result(community_service.fetch_article(engine, article_id))


@router.put("/articles/{article_id}")
async def edit_article(
    article_id: int,
    body: ArticleUpdate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    article = raise_for_result(await run_db(
        community_service.update_article,
        engine,
        article_id,
        title=body.title,
        body=body.body,
        latest_edit_date=now,
    ))
    notified = await _fan_out(engine, NotificationType.ARTICLE_UPDATE, article.id, now)
    return {"article": article, "notified": notified}
