"""
agora.api.routes.notifications — Inbox & opt-outs
==================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from agora.api.deps import get_engine
from agora.api.errors import raise_for_result
from agora.database.models import NotificationType
from agora.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/{username}")
def get_inbox(
    username: str,
    unread_only: bool = False,
    engine: Engine = Depends(get_engine),
):
    notifications = raise_for_result(
        notification_service.fetch_inbox(engine, username, unread_only=unread_only)
    )
    return {"username": username, "notifications": notifications}


@router.get("/{username}/unread")
def get_has_unread(username: str, engine: Engine = Depends(get_engine)):
    return {"has_unread": raise_for_result(notification_service.has_unread(engine, username))}


@router.post("/{username}/read-all")
def read_all(username: str, engine: Engine = Depends(get_engine)):
    marked = raise_for_result(notification_service.mark_all_read(engine, username))
    return {"username": username, "marked": len(marked), "notifications": marked}


@router.post("/{notification_id}/read")
def read_one(notification_id: int, engine: Engine = Depends(get_engine)):
    return raise_for_result(notification_service.mark_read(engine, notification_id))


@router.post("/{username}/blocked/{notification_type}")
def toggle_blocked(
    username: str,
    notification_type: NotificationType,
    engine: Engine = Depends(get_engine),
):
    blocked = raise_for_result(
        notification_service.toggle_blocked_type(engine, username, notification_type)
    )
    return {"username": username, "blocked_notifications": blocked}
