from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Asset, AssetType, GeneratedIdea, Page, Plan, Project, PublicationSize
from .provider import split_data_url

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


# -------------------------------------------------
# Read-only view
# -------------------------------------------------

@dataclass(frozen=True)
class ExportView:
    """What export consumers get to see of a project. Never mutated."""

    plan: Plan
    pages: Tuple[Page, ...] = ()
    assets: Tuple[Asset, ...] = ()
    publication_size: PublicationSize = PublicationSize.PORTRAIT
    _by_id: Dict[str, Asset] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {a.id: a for a in self.assets})

    @classmethod
    def from_project(cls, project: Project) -> "ExportView":
        return cls(
            plan=project.plan,
            pages=tuple(project.pages),
            assets=tuple(project.assets),
            publication_size=project.configuration.publication_size,
        )

    def asset_for(self, page_id: str) -> Optional[Asset]:
        return self._by_id.get(page_id)

    def mockups(self) -> List[Asset]:
        return [a for a in self.assets if a.type is AssetType.MOCKUP and a.is_ready]


def slugify(name: str) -> str:
    return _NON_ALNUM.sub("_", name).lower()


def file_stem(title: str) -> str:
    return _WHITESPACE.sub("_", title.strip()) or "Untitled"


def materialized_pages(view: ExportView) -> List[Tuple[Page, Asset]]:
    """Pages that have a finished image, in page order."""
    found = []
    for page in view.pages:
        asset = view.asset_for(page.id)
        if asset is not None and asset.is_ready:
            found.append((page, asset))
    return found


# -------------------------------------------------
# Text exports
# -------------------------------------------------

def plan_text(view: ExportView) -> str:
    lines = [
        f"Project: {view.plan.title}",
        f"Concept: {view.plan.concept}",
        f"Format: {view.publication_size.value}",
        "",
        "--- Page List & Prompts ---",
    ]
    for i, page in enumerate(view.pages, start=1):
        lines.append(f"{i}. {page.name}")
        lines.append(f"   Prompt: {page.image_prompt}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def prompt_library_text(view: ExportView) -> str:
    content = f"PROJECT: {view.plan.title}\nTHEME: {view.plan.concept}\n\n--- PROMPT LIBRARY ---\n"
    for i, page in enumerate(view.pages, start=1):
        content += f"\n{i}. {page.name}\n{page.image_prompt}\n"
    return content


def ideas_text(plan: Plan, ideas: Iterable[GeneratedIdea]) -> str:
    content = f"GENERATED PROMPT IDEAS\nProject: {plan.title}\n\n"
    for i, idea in enumerate(ideas, start=1):
        content += f"{i}. {idea.title}\n{idea.prompt}\n\n"
    return content


# -------------------------------------------------
# Archives
# -------------------------------------------------

def _unique(name: str, taken: Set[str]) -> str:
    candidate, n = name, 1
    while candidate in taken:
        n += 1
        candidate = f"{name}_{n}"
    taken.add(candidate)
    return candidate


def build_archive(view: ExportView) -> bytes:
    """ZIP with images/<slug>.png for every finished page plus project_plan.txt."""
    buffer = io.BytesIO()
    taken: Set[str] = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for page, asset in materialized_pages(view):
            try:
                _, data = split_data_url(asset.payload)
            except ValueError as exc:
                logger.warning("Skipping image for page %s: %s", page.id, exc)
                continue
            zf.writestr(f"images/{_unique(slugify(page.name), taken)}.png", data)
        zf.writestr("project_plan.txt", plan_text(view))
    return buffer.getvalue()


def build_mockup_archive(assets: Iterable[Asset]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        index = 0
        for asset in assets:
            if asset.type is not AssetType.MOCKUP or not asset.is_ready:
                continue
            try:
                _, data = split_data_url(asset.payload)
            except ValueError as exc:
                logger.warning("Skipping mockup %s: %s", asset.id, exc)
                continue
            index += 1
            zf.writestr(f"mockups/mockup_{index}.png", data)
    return buffer.getvalue()


__all__ = [
    "ExportView",
    "materialized_pages",
    "build_archive",
    "build_mockup_archive",
    "plan_text",
    "prompt_library_text",
    "ideas_text",
    "slugify",
    "file_stem",
]
