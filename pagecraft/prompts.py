from __future__ import annotations

import textwrap
from typing import Sequence

from .models import Plan, RenderMode, WizardConfiguration

DEFAULT_THEME = "General Creative"

IDEA_KINDS = ("cover", "page", "sticker")


# -------------------------
# Idea style instructions
# -------------------------

_IDEA_STYLE = {
    ("cover", RenderMode.COLOR): (
        "Create prompts for FULL COLOR book covers. Vibrant, eye-catching. "
        "NO TEXT, NO AUTHOR NAMES on the art."
    ),
    ("page", RenderMode.LINE_ART): (
        "Create prompts for INTERIOR COLORING PAGES. Black and white, clean line art, "
        "no shading, high contrast."
    ),
    ("sticker", RenderMode.COLOR): (
        "Create prompts for FULL COLOR Sticker sheets. Cute, die-cut style, white borders."
    ),
    ("sticker", RenderMode.LINE_ART): (
        "Create prompts for BLACK & WHITE LINE ART Sticker sheets (coloring stickers). "
        "Die-cut style, white borders."
    ),
}


def idea_style_instruction(kind: str, style: RenderMode) -> str:
    # covers are always color and interior pages always line art
    if kind == "cover":
        return _IDEA_STYLE[("cover", RenderMode.COLOR)]
    if kind == "page":
        return _IDEA_STYLE[("page", RenderMode.LINE_ART)]
    mode = RenderMode.COLOR if style is RenderMode.COLOR else RenderMode.LINE_ART
    return _IDEA_STYLE[("sticker", mode)]


# -------------------------
# Task builders
# -------------------------

def build_plan_task(config: WizardConfiguration) -> str:
    theme = config.theme.strip() or DEFAULT_THEME
    return textwrap.dedent(
        f"""
        Act as a professional creative director for a publishing company.
        Create a detailed project plan for a "{config.product_type}" centered around the theme/concept of "{theme}".
        It is designed specifically for "{config.target_audience}" and features a "{config.art_style}" art style.
        The publication format is "{config.size_label()}".

        The plan must include:
        1. A catchy project title.
        2. A high-level concept description integrating "{theme}".
        3. 3-5 color palette suggestions (descriptive).
        4. A list of 5-8 specific pages/sections (e.g. Cover, Daily Spread, Habit Tracker, Quote Page).
           For each page provide a name, a description and a highly detailed image generation prompt.
           Mark exactly one page as the cover.
        5. 3 specific monetization strategies.

        Respond with JSON: title, concept, palette, pages[name, description, imagePrompt, isCover], monetizationStrategies.
        """
    ).strip()


def build_extra_pages_task(plan: Plan, existing_names: Sequence[str], count: int) -> str:
    existing = ", ".join(existing_names) or "None"
    return textwrap.dedent(
        f"""
        Context: Creating "{plan.title}".
        Concept: {plan.concept}

        Existing pages: {existing}.

        Task: Create {count} NEW, UNIQUE page ideas that fit this project theme but are NOT duplicates of existing pages.
        Provide a name, description and detailed imagePrompt for each.
        """
    ).strip()


def build_concept_task(plan: Plan, current_name: str) -> str:
    return textwrap.dedent(
        f"""
        Context: Creating "{plan.title}".
        Concept: {plan.concept}

        Task: Provide a fresh, alternative concept for a page similar to "{current_name}",
        or a completely new idea that fits the theme well.
        Return a single page object with name, description and imagePrompt.
        """
    ).strip()


def build_ideas_task(
    plan: Plan,
    kind: str,
    style: RenderMode,
    instructions: str,
    count: int,
) -> str:
    return textwrap.dedent(
        f"""
        Context: Project "{plan.title}" ({plan.concept}).
        Task: Generate {count} distinct image prompts for: {kind.upper()}.
        Base style: {idea_style_instruction(kind, style)}
        Additional user instructions: {instructions.strip() or 'None'}
        Focus on unique angles, details, or complementary scenes.
        Return a list of objects with title and prompt.
        """
    ).strip()


__all__ = [
    "DEFAULT_THEME",
    "IDEA_KINDS",
    "idea_style_instruction",
    "build_plan_task",
    "build_extra_pages_task",
    "build_concept_task",
    "build_ideas_task",
]
