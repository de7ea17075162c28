"""
agora.api.routes.questions — Feed, votes, answers & comments
=============================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from agora.api.deps import get_engine, get_now
from agora.api.errors import raise_for_result
from agora.database.engine import run_db
from agora.database.models import NotificationType, VoteType
from agora.engine.ranking import QuestionOrder
from agora.services import challenge_service, question_service
from agora.services.notification_service import announce
from agora.services.recipients import NotificationEvent

router = APIRouter(tags=["questions"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class QuestionCreate(BaseModel):
    title: str
    text: str
    asked_by: str
    tags: list[str] = []
    ask_date_time: datetime | None = None


class VoteRequest(BaseModel):
    username: str
    vote_type: VoteType


class SubscribeRequest(BaseModel):
    username: str


class AnswerCreate(BaseModel):
    text: str
    ans_by: str
    ans_date_time: datetime | None = None


class CommentCreate(BaseModel):
    text: str
    comment_by: str
    comment_date_time: datetime | None = None


def _notified(report) -> list[str]:
    return list(report.recipients) if report else []


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------
@router.get("/questions")
def list_questions(
    order: QuestionOrder = QuestionOrder.NEWEST,
    search: str | None = Query(default=None),
    asked_by: str | None = Query(default=None),
    engine: Engine = Depends(get_engine),
):
    return raise_for_result(question_service.get_questions_by_order(
        engine, order, search=search, asked_by=asked_by,
    ))


@router.post("/questions", status_code=201)
def create_question(
    body: QuestionCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    return raise_for_result(question_service.add_question(
        engine,
        title=body.title,
        text=body.text,
        asked_by=body.asked_by,
        ask_date_time=body.ask_date_time or now,
        tags=body.tags,
    ))


@router.get("/questions/{question_id}")
def get_question(
    question_id: int,
    username: str | None = None,
    engine: Engine = Depends(get_engine),
):
    if username:
        return raise_for_result(question_service.record_view(engine, question_id, username))
    return raise_for_result(question_service.fetch_question(engine, question_id))


@router.get("/tags/counts")
def tag_counts(engine: Engine = Depends(get_engine)):
    return raise_for_result(question_service.tag_question_counts(engine))


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
@router.post("/questions/{question_id}/vote")
async def vote_question(
    question_id: int,
    body: VoteRequest,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    outcome = raise_for_result(await run_db(
        question_service.vote_on_question, engine, question_id, body.username, body.vote_type,
    ))
    notified: list[str] = []
    if outcome.active and outcome.vote_type == VoteType.UPVOTE:
        report = await announce(
            engine, NotificationEvent(NotificationType.UPVOTE, question_id), now=now,
        )
        notified = _notified(report)
        progress = await challenge_service.increment_progress_for_question_asker(
            engine, question_id, now=now,
        )
        if not progress.ok:
            logger.warning("Upvote challenge progress failed: %s", progress.error.message)
    return {
        "msg": outcome.message,
        "up_votes": list(outcome.up_votes),
        "down_votes": list(outcome.down_votes),
        "notified": notified,
    }


@router.post("/questions/{question_id}/subscribe")
def subscribe_question(
    question_id: int,
    body: SubscribeRequest,
    engine: Engine = Depends(get_engine),
):
    return raise_for_result(
        question_service.toggle_subscriber(engine, question_id, body.username)
    )


@router.post("/questions/{question_id}/answers", status_code=201)
async def answer_question(
    question_id: int,
    body: AnswerCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    answer = raise_for_result(await run_db(
        question_service.add_answer,
        engine,
        question_id,
        text=body.text,
        ans_by=body.ans_by,
        ans_date_time=body.ans_date_time or now,
    ))
    report = await announce(engine, NotificationEvent(NotificationType.ANSWER, question_id), now=now)
    return {"answer": answer, "notified": _notified(report)}


@router.post("/questions/{question_id}/comments", status_code=201)
async def comment_question(
    question_id: int,
    body: CommentCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    comment = raise_for_result(await run_db(
        question_service.add_comment,
        engine,
        "question",
        question_id,
        text=body.text,
        comment_by=body.comment_by,
        comment_date_time=body.comment_date_time or now,
    ))
    report = await announce(engine, NotificationEvent(NotificationType.COMMENT, question_id), now=now)
    return {"comment": comment, "notified": _notified(report)}


@router.post("/answers/{answer_id}/comments", status_code=201)
async def comment_answer(
    answer_id: int,
    body: CommentCreate,
    engine: Engine = Depends(get_engine),
    now: datetime = Depends(get_now),
):
    comment = raise_for_result(await run_db(
        question_service.add_comment,
        engine,
        "answer",
        answer_id,
        text=body.text,
        comment_by=body.comment_by,
        comment_date_time=body.comment_date_time or now,
    ))
    report = await announce(
        engine, NotificationEvent(NotificationType.ANSWER_COMMENT, answer_id), now=now,
    )
    return {"comment": comment, "notified": _notified(report)}
