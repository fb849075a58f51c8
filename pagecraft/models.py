from __future__ import annotations

import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ================================
# Enums
# ================================

class PublicationSize(str, Enum):
    SQUARE = "Square (12x12)"
    PORTRAIT = "Portrait (8.5x11)"
    LANDSCAPE = "Landscape (11x8.5)"
    CUSTOM = "Custom"


class RenderMode(str, Enum):
    COLOR = "color"
    LINE_ART = "line_art"
    UNSET = "unset"


class AssetType(str, Enum):
    COVER = "cover"
    COLORING_PAGE = "coloring_page"
    STICKER = "sticker"
    DIVIDER = "divider"
    MOCKUP = "mockup"


# ================================
# Helpers
# ================================

def mint_id(prefix: str) -> str:
    """Mint a fresh record id such as ``page_3f9a0c1b2d4e``."""
    return f"{prefix}_{secrets.token_hex(6)}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


# ================================
# Wizard configuration
# ================================

class WizardConfiguration(BaseModel):
    """User choices collected by the wizard; consumed once to produce a Plan."""

    product_type: str = ""
    theme: str = ""
    target_audience: str = ""
    art_style: str = ""
    publication_size: PublicationSize = PublicationSize.PORTRAIT
    custom_dimensions: Optional[str] = None

    def size_label(self) -> str:
        if self.publication_size is PublicationSize.CUSTOM:
            return f"Custom Size: {self.custom_dimensions or 'Unspecified'}"
        return self.publication_size.value


# ================================
# Plan / Page / Asset
# ================================

class Plan(BaseModel):
    title: str
    concept: str
    palette: List[str] = Field(default_factory=list)
    monetization_strategies: List[str] = Field(default_factory=list)

    @classmethod
    def blank(cls) -> "Plan":
        return cls(
            title="Untitled Creative Project",
            concept="Quick Start Session",
            palette=["Customize as needed"],
            monetization_strategies=[],
        )


class Page(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(frozen=True)
    name: str
    description: str = ""
    image_prompt: str
    is_cover: bool = False
    render_mode: RenderMode = RenderMode.UNSET
    # Only set for pages promoted from sticker/cover ideas.
    asset_type: Optional[AssetType] = None

    def resolved_render_mode(self) -> RenderMode:
        if self.render_mode is not RenderMode.UNSET:
            return self.render_mode
        return RenderMode.COLOR if self.is_cover else RenderMode.LINE_ART

    def resolved_asset_type(self) -> AssetType:
        if self.asset_type is not None:
            return self.asset_type
        return AssetType.COVER if self.is_cover else AssetType.COLORING_PAGE


class Asset(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(frozen=True)
    prompt: str
    type: AssetType
    payload: str = ""
    loading: bool = False
    aspect_ratio: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return bool(self.payload) and not self.loading


# ================================
# Persisted project snapshot
# ================================

class Project(BaseModel):
    id: str
    timestamp: str = Field(default_factory=now_iso)
    configuration: WizardConfiguration = Field(default_factory=WizardConfiguration)
    plan: Plan
    pages: List[Page] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)


class GeneratedIdea(BaseModel):
    """Session-only title/prompt pair from the idea generator."""

    title: str
    prompt: str
    kind: str = "page"
    style: RenderMode = RenderMode.LINE_ART


__all__ = [
    "PublicationSize",
    "RenderMode",
    "AssetType",
    "WizardConfiguration",
    "Plan",
    "Page",
    "Asset",
    "Project",
    "GeneratedIdea",
    "mint_id",
    "now_iso",
]
