"""
Database Schemas for Tech Mastery

Each Pydantic model stored in MongoDB maps to a collection: User -> "users",
Challenge -> "challenges". Request bodies live at the bottom.

Documents are stored with snake_case keys and go over the wire in camelCase
(``model_dump(by_alias=True)``). Both spellings are accepted on input.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime

Difficulty = Literal["Beginner", "Intermediate", "Advanced"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Progress(ApiModel):
    """Cumulative gamification state embedded in a user"""
    total_points: int = Field(0, ge=0, description="Points earned across all challenges")
    completed_challenges: List[str] = Field(default_factory=list, description="Completed challenge ids, no duplicates")
    completed_fields: List[int] = Field(default_factory=list)
    completed_missions: List[int] = Field(default_factory=list)
    current_streak: int = Field(0, ge=0, description="Not updated by any operation yet")
    last_active: Optional[datetime] = Field(None, description="Last time a completion was credited")


class User(ApiModel):
    """
    Collection: "users"
    Created lazily on first login, via Google or a bare nickname
    """
    google_id: Optional[str] = Field(None, description="OAuth subject id; absent for nickname logins")
    login_nickname: Optional[str] = Field(
        None, description="Set only for nickname logins; unique among them"
    )
    nickname: str = Field(..., description="Display name")
    email: Optional[str] = Field(None)
    avatar: Optional[str] = Field(None, description="Avatar URL")
    progress: Progress = Field(default_factory=Progress)
    achievements: List[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class TestCase(ApiModel):
    input: str
    expected_output: str


class Challenge(ApiModel):
    """
    Collection: "challenges"
    Seeded once at startup, read-only afterwards
    """
    title: str
    description: str
    difficulty: Difficulty
    category: str = Field(..., description="One of the 8 tech field names")
    points: int = Field(..., ge=0, description="10 / 25 / 50 by difficulty")
    time_limit: str = Field(..., description="Free-text label, e.g. '30 mins'")
    test_cases: List[TestCase] = Field(default_factory=list)
    starter_code: str = ""
    order: int = Field(..., ge=1, description="Seed position, gives listing order")


def to_public(model, doc: dict) -> dict:
    """Render a sanitized document (``id`` already set) in wire form."""
    data = model.model_validate(doc).model_dump(by_alias=True)
    data["id"] = doc["id"]
    return data


# ---------- Request bodies ----------

class SimpleLoginRequest(ApiModel):
    nickname: str = ""


class UpdateProgressRequest(ApiModel):
    challenge_id: str = Field(..., alias="challengeId")
    points: Optional[int] = Field(None, description="Ignored; points come from the challenge")


class ExecuteCodeRequest(ApiModel):
    code: str = ""
    language: str = "javascript"
