"""Output shapes declared to the provider for structured requests."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class PageDraft(BaseModel):
    name: str
    description: str
    imagePrompt: str
    isCover: Optional[bool] = Field(default=None, description="True if this is the main cover")


class PlanDraft(BaseModel):
    title: str
    concept: str
    palette: List[str] = Field(default_factory=list)
    pages: List[PageDraft]
    monetizationStrategies: List[str]


class IdeaDraft(BaseModel):
    title: str
    prompt: str


PLAN_SHAPE = PlanDraft
PAGE_LIST_SHAPE = list[PageDraft]
PAGE_SHAPE = PageDraft
IDEA_LIST_SHAPE = list[IdeaDraft]


__all__ = [
    "PageDraft",
    "PlanDraft",
    "IdeaDraft",
    "PLAN_SHAPE",
    "PAGE_LIST_SHAPE",
    "PAGE_SHAPE",
    "IDEA_LIST_SHAPE",
]
