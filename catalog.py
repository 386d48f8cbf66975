"""
Challenge catalog: seeding, filtering and lookup.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

import database
from database import CHALLENGES
from errors import NotFound
from schemas import Challenge, to_public

logger = logging.getLogger("tech_mastery.catalog")

router = APIRouter(tags=["challenges"])

FIELDS = [
    {"id": 1, "name": "Web Development", "icon": "fa-globe", "description": "HTML, CSS, JavaScript, React, Node.js"},
    {"id": 2, "name": "Data Science & AI", "icon": "fa-robot", "description": "Python, ML, Deep Learning, TensorFlow"},
    {"id": 3, "name": "Mobile Development", "icon": "fa-mobile-alt", "description": "React Native, Flutter, iOS, Android"},
    {"id": 4, "name": "Cloud & DevOps", "icon": "fa-cloud", "description": "AWS, Docker, Kubernetes, CI/CD"},
    {"id": 5, "name": "Cybersecurity", "icon": "fa-shield-alt", "description": "Ethical Hacking, Penetration Testing"},
    {"id": 6, "name": "Blockchain & Web3", "icon": "fa-link", "description": "Solidity, Smart Contracts, DeFi"},
    {"id": 7, "name": "Game Development", "icon": "fa-gamepad", "description": "Unity, Unreal Engine, Game Design"},
    {"id": 8, "name": "UI/UX Design", "icon": "fa-palette", "description": "Figma, Design Principles, Prototyping"},
]

STARTER_CODE = "// Write your solution here\nfunction solution() {\n  \n}"

# (difficulty, count, points, time limit, rotating categories, description)
TIERS = [
    (
        "Beginner", 150, 10, "30 mins",
        ["Web Development", "Data Science & AI", "Mobile Development"],
        "Solve this beginner-level coding problem to build your foundation. "
        "Challenge {i} focuses on basic programming concepts.",
    ),
    (
        "Intermediate", 200, 25, "60 mins",
        ["Cloud & DevOps", "Cybersecurity", "Blockchain & Web3"],
        "Take your skills to the next level with this intermediate challenge. "
        "Apply advanced concepts and algorithms.",
    ),
    (
        "Advanced", 150, 50, "120 mins",
        ["Game Development", "UI/UX Design", "Web Development"],
        "Master-level challenge for true tech geniuses. "
        "Requires deep understanding of algorithms and data structures.",
    ),
]

SEED_SIZE = sum(tier[1] for tier in TIERS)
MAX_LIMIT = SEED_SIZE
DEFAULT_LIMIT = 50


def generate_challenges() -> List[Challenge]:
    challenges = []
    for difficulty, count, points, time_limit, categories, description in TIERS:
        for i in range(1, count + 1):
            challenges.append(Challenge(
                title=f"{difficulty} Challenge {i}",
                description=description.format(i=i),
                difficulty=difficulty,
                category=categories[i % 3],
                points=points,
                time_limit=time_limit,
                starter_code=STARTER_CODE,
                order=len(challenges) + 1,
            ))
    return challenges


def seed_if_empty() -> int:
    """Insert the fixed challenge set when the catalog is empty.

    Safe to call on every start: returns 0 without writing if anything is
    already there."""
    with database.key_lock("seed"):
        if database.count_documents(CHALLENGES) > 0:
            return 0
        logger.info("Seeding challenges...")
        inserted = database.create_documents(CHALLENGES, generate_challenges())
    logger.info("Seeded %d challenges", inserted)
    return inserted


def list_challenges(
    difficulty: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[dict]:
    query = {}
    if difficulty:
        query["difficulty"] = difficulty
    if category:
        query["category"] = category
    docs = database.get_documents(CHALLENGES, query, limit=min(limit, MAX_LIMIT), sort="order")
    return [to_public(Challenge, database.sanitize(d)) for d in docs]


def get_challenge(challenge_id: str) -> dict:
    doc = database.get_document(CHALLENGES, challenge_id)
    if not doc:
        raise NotFound("Challenge not found")
    return to_public(Challenge, database.sanitize(doc))


def list_fields() -> List[dict]:
    return [dict(f) for f in FIELDS]


# ---------- Routes ----------

@router.get("/api/challenges")
def list_challenges_route(
    difficulty: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1),
):
    return {"challenges": list_challenges(difficulty, category, limit)}


@router.get("/api/challenges/{challenge_id}")
def get_challenge_route(challenge_id: str):
    return {"challenge": get_challenge(challenge_id)}


@router.get("/api/fields")
def list_fields_route():
    return {"fields": list_fields()}
