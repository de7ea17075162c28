"""
agora.api.routes.users — Profiles & reward wallet
==================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from agora.api.deps import get_engine
from agora.api.errors import raise_for_result
from agora.database.models import RewardKind
from agora.services import challenge_service

router = APIRouter(prefix="/users", tags=["users"])


class UserCreate(BaseModel):
    username: str


class EquipRequest(BaseModel):
    reward: str
    kind: RewardKind


class PointsRequest(BaseModel):
    points: int


class FramesRequest(BaseModel):
    frames: list[str]


@router.post("", status_code=201)
def create_user(body: UserCreate, engine: Engine = Depends(get_engine)):
    return raise_for_result(challenge_service.register_user(engine, body.username))


@router.get("/{username}")
def get_user(username: str, engine: Engine = Depends(get_engine)):
    return raise_for_result(challenge_service.fetch_user(engine, username))


@router.put("/{username}/equip")
def equip(username: str, body: EquipRequest, engine: Engine = Depends(get_engine)):
    return raise_for_result(
        challenge_service.equip_reward(engine, username, body.reward, body.kind)
    )


@router.put("/{username}/points")
def add_points(username: str, body: PointsRequest, engine: Engine = Depends(get_engine)):
    total = raise_for_result(challenge_service.add_points(engine, username, body.points))
    return {"username": username, "total_points": total}


@router.put("/{username}/frames")
def unlock_frames(username: str, body: FramesRequest, engine: Engine = Depends(get_engine)):
    frames = raise_for_result(challenge_service.unlock_frames(engine, username, body.frames))
    return {"username": username, "unlocked_frames": frames}
