"""Lesson completion schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LessonCompletionRequest(BaseModel):
    """Teacher-authored outcome of a finished lesson."""

    hours_completed: float
    performance_rating: int
    skills_improved: list[str] = Field(default_factory=list)
    areas_to_improve: str = Field(default="", max_length=2000)
    ready_for_next_level: bool = False
