"""
Deterministic prompt scaffolding for image requests.

enhance() maps (free-text prompt, asset type, render mode) to the final text
sent to the provider. Style contracts are expressed as two fixed, disjoint
directive sets; a single output never carries both.
"""

from __future__ import annotations

from typing import Tuple

from .models import AssetType, PublicationSize, RenderMode


# -------------------------
# Directive sets
# -------------------------

COLOR_DIRECTIVES: Tuple[str, ...] = (
    "(FULL COLOR ILLUSTRATION)",
    "(NO MONOCHROME)",
    "(NO OUTLINE-ONLY RENDERING)",
    "vibrant colors",
    "rich saturated palette",
)

LINE_ART_DIRECTIVES: Tuple[str, ...] = (
    "(STRICT BLACK AND WHITE LINE ART)",
    "(NO GRAYSCALE)",
    "(NO SHADING)",
    "(NO COLORS)",
    "clean crisp vector lines",
    "high contrast",
)

COVER_FRAMING = "highly detailed professional book cover art"
COVER_QUALITY = "8k resolution"
NO_AUTHOR_NAMES = "(NO RANDOM AUTHOR NAMES)"
COLORING_PAGE_FRAMING = "professional coloring book page, plain paper background"
COLORING_PAGE_QUALITY = "intricate details"
STICKER_FRAMING = (
    "sticker sheet design, thick white border around items, die-cut style, "
    "simple vector graphic, white background, organized layout"
)

MOCKUP_FRAMING = (
    "Generate a high-quality, photorealistic product mockup. "
    "The product being shown is a coloring book or planner page. "
    "Use the visual style and content of the provided reference image as the printed design "
    "on the paper in the scene. Make it look professional, like an online marketplace listing photo."
)

MOCKUP_ASPECT_RATIO = "4:3"


# -------------------------
# Resolution
# -------------------------

def resolve_render_mode(asset_type: AssetType, render_mode: RenderMode) -> RenderMode:
    if render_mode is not RenderMode.UNSET:
        return render_mode
    return RenderMode.COLOR if asset_type is AssetType.COVER else RenderMode.LINE_ART


def _style_clauses(mode: RenderMode) -> Tuple[str, ...]:
    return COLOR_DIRECTIVES if mode is RenderMode.COLOR else LINE_ART_DIRECTIVES


def _join(leading: Tuple[str, ...], prompt: str, trailing: Tuple[str, ...]) -> str:
    head = ", ".join(leading)
    body = prompt.strip().rstrip(".")
    tail = ", ".join(trailing)
    text = f"{head}, {body}" if head else body
    return f"{text}. {tail}." if tail else f"{text}."


# -------------------------
# Public API
# -------------------------

def enhance(
    prompt: str,
    asset_type: AssetType,
    render_mode: RenderMode = RenderMode.UNSET,
) -> str:
    asset_type = AssetType(asset_type)
    render_mode = RenderMode(render_mode)

    if asset_type is AssetType.MOCKUP:
        return mockup_prompt(prompt)

    mode = resolve_render_mode(asset_type, render_mode)
    style = _style_clauses(mode)

    if asset_type is AssetType.COVER:
        if mode is RenderMode.COLOR:
            return _join(style[:1] + (NO_AUTHOR_NAMES,) + style[1:3], prompt, style[3:] + (COVER_FRAMING, COVER_QUALITY))
        return _join(style[:4], prompt, style[4:] + (COVER_FRAMING,))

    if asset_type is AssetType.STICKER:
        return _join(style, prompt, (STICKER_FRAMING,))

    # coloring_page / divider
    if mode is RenderMode.COLOR:
        return _join(style[:3], prompt, style[3:])
    return _join(style[:4], prompt, style[4:] + (COLORING_PAGE_FRAMING, COLORING_PAGE_QUALITY))


def mockup_prompt(scene: str) -> str:
    return f"{MOCKUP_FRAMING}\nScene: {scene.strip()}."


def aspect_ratio_for(size: PublicationSize, asset_type: AssetType) -> str:
    if AssetType(asset_type) is AssetType.MOCKUP:
        return MOCKUP_ASPECT_RATIO
    size = PublicationSize(size)
    if size is PublicationSize.PORTRAIT:
        return "3:4"
    if size is PublicationSize.LANDSCAPE:
        return "4:3"
    return "1:1"


__all__ = [
    "COLOR_DIRECTIVES",
    "LINE_ART_DIRECTIVES",
    "enhance",
    "mockup_prompt",
    "aspect_ratio_for",
    "resolve_render_mode",
]
