"""
Progress service: reads and credits a user's points and completions.

Every challenge awards its points once per user. The award is derived from
the stored challenge, never from the request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

import database
from auth import require_user_id
from catalog import get_challenge
from database import USERS
from errors import NotFound
from schemas import Progress, UpdateProgressRequest

logger = logging.getLogger("tech_mastery.progress")

router = APIRouter(tags=["progress"])


def _load_user(user_id: str) -> dict:
    user = database.get_document(USERS, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _progress_of(user: dict) -> Progress:
    return Progress.model_validate(user.get("progress") or {})


def get_progress(user_id: str) -> dict:
    user = _load_user(user_id)
    return {
        "progress": _progress_of(user).model_dump(by_alias=True),
        "achievements": user.get("achievements", []),
    }


def record_completion(user_id: str, challenge_id: str, points: Optional[int] = None) -> dict:
    """Credit a completed challenge; repeating it changes nothing."""
    challenge = get_challenge(challenge_id)
    award = challenge["points"]
    if points is not None and points != award:
        logger.warning(
            "Ignoring client points %s for challenge %s (worth %s)", points, challenge_id, award
        )

    with database.key_lock(f"user:{user_id}"):
        progress = _progress_of(_load_user(user_id))
        if challenge["id"] in progress.completed_challenges:
            return progress.model_dump(by_alias=True)

        progress.completed_challenges.append(challenge["id"])
        progress.total_points += award
        progress.last_active = database.now()
        database.update_document(USERS, user_id, {"progress": progress.model_dump()})

    logger.info("User %s completed challenge %s (+%d)", user_id, challenge["id"], award)
    return progress.model_dump(by_alias=True)


# ---------- Routes ----------

@router.get("/api/user/progress")
def get_progress_route(user_id: str = Depends(require_user_id)):
    return get_progress(user_id)


@router.post("/api/user/update-progress")
def update_progress_route(payload: UpdateProgressRequest, user_id: str = Depends(require_user_id)):
    progress = record_completion(user_id, payload.challenge_id, payload.points)
    return {"success": True, "progress": progress}
