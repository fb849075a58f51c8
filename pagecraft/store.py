from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import NoActiveProjectError, UnknownRecordError
from .models import (
    Asset,
    AssetType,
    GeneratedIdea,
    Page,
    Plan,
    Project,
    RenderMode,
    WizardConfiguration,
    mint_id,
    now_iso,
)

logger = logging.getLogger(__name__)

ChangeListener = Callable[["Session"], None]


# ================================
# Session (active project context)
# ================================

@dataclass
class Entry:
    """Page/asset pair stored under one id. Mockups have no page."""
    page: Optional[Page] = None
    asset: Optional[Asset] = None


@dataclass
class Session:
    project_id: str
    configuration: WizardConfiguration
    plan: Plan
    entries: Dict[str, Entry] = field(default_factory=dict)
    page_order: List[str] = field(default_factory=list)
    asset_order: List[str] = field(default_factory=list)
    ideas: List[GeneratedIdea] = field(default_factory=list)


# ================================
# Project store
# ================================

class ProjectStore:
    """
    In-memory home of the active project.

    All mutations are synchronous and either apply fully or raise before
    touching anything. Listeners are notified after every applied mutation.
    """

    def __init__(self) -> None:
        self.session: Optional[Session] = None
        self._listeners: List[ChangeListener] = []

    # -------------------------
    # Listeners
    # -------------------------

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        session = self.session
        if session is None:
            return
        for listener in list(self._listeners):
            listener(session)

    def require_session(self) -> Session:
        if self.session is None:
            raise NoActiveProjectError("No project is open.")
        return self.session

    @property
    def active_project_id(self) -> Optional[str]:
        return self.session.project_id if self.session else None

    # -------------------------
    # Project lifecycle
    # -------------------------

    def create_project(
        self,
        configuration: WizardConfiguration,
        plan: Plan,
        pages: Iterable[Page] = (),
    ) -> Session:
        session = Session(
            project_id=mint_id("proj"),
            configuration=configuration.model_copy(deep=True),
            plan=plan,
        )
        for page in pages:
            if page.id in session.entries:
                raise ValueError(f"Duplicate page id '{page.id}'.")
            session.entries[page.id] = Entry(page=page)
            session.page_order.append(page.id)

        self.session = session
        logger.info("Created project %s with %s pages", session.project_id, len(session.page_order))
        self._changed()
        return session

    def quick_start(self, configuration: Optional[WizardConfiguration] = None) -> Session:
        return self.create_project(configuration or WizardConfiguration(), Plan.blank())

    def open_project(self, project: Project) -> Session:
        """Make a stored snapshot the active session. Does not notify listeners."""
        session = Session(
            project_id=project.id,
            configuration=project.configuration.model_copy(deep=True),
            plan=project.plan.model_copy(deep=True),
        )
        for page in project.pages:
            if page.id in session.entries:
                logger.warning("Project %s: skipping duplicate page id %s", project.id, page.id)
                continue
            session.entries[page.id] = Entry(page=page.model_copy(deep=True))
            session.page_order.append(page.id)

        for asset in project.assets:
            restored = _sanitize_loaded_asset(asset)
            if restored is None:
                continue
            entry = session.entries.get(restored.id)
            if restored.type is not AssetType.MOCKUP and (entry is None or entry.page is None):
                logger.warning("Project %s: dropping orphan asset %s", project.id, restored.id)
                continue
            if entry is None:
                entry = session.entries[restored.id] = Entry()
            if entry.asset is None:
                session.asset_order.append(restored.id)
            entry.asset = restored

        self.session = session
        return session

    def restart(self) -> None:
        self.session = None

    # -------------------------
    # Plan / configuration
    # -------------------------

    def update_plan(self, **fields: Any) -> Plan:
        session = self.require_session()
        session.plan = Plan.model_validate({**session.plan.model_dump(), **fields})
        self._changed()
        return session.plan

    def update_configuration(self, **fields: Any) -> WizardConfiguration:
        session = self.require_session()
        session.configuration = WizardConfiguration.model_validate(
            {**session.configuration.model_dump(), **fields}
        )
        self._changed()
        return session.configuration

    # -------------------------
    # Pages
    # -------------------------

    def pages(self) -> List[Page]:
        session = self.require_session()
        return [session.entries[pid].page for pid in session.page_order]  # type: ignore[misc]

    def get_page(self, page_id: str) -> Page:
        entry = self.require_session().entries.get(page_id)
        if entry is None or entry.page is None:
            raise UnknownRecordError(f"Unknown page '{page_id}'.")
        return entry.page

    def has_page(self, page_id: str) -> bool:
        if self.session is None:
            return False
        entry = self.session.entries.get(page_id)
        return entry is not None and entry.page is not None

    def add_page(self, page: Page, *, at_start: bool = False) -> Page:
        session = self.require_session()
        if page.id in session.entries:
            raise ValueError(f"Page id '{page.id}' already exists.")
        session.entries[page.id] = Entry(page=page)
        if at_start:
            session.page_order.insert(0, page.id)
        else:
            session.page_order.append(page.id)
        self._changed()
        return page

    def add_pages(self, pages: Iterable[Page]) -> List[Page]:
        session = self.require_session()
        new_pages = list(pages)
        ids = [p.id for p in new_pages]
        if len(set(ids)) != len(ids) or any(pid in session.entries for pid in ids):
            raise ValueError("Page ids must be unique.")
        for page in new_pages:
            session.entries[page.id] = Entry(page=page)
            session.page_order.append(page.id)
        self._changed()
        return new_pages

    def edit_page(
        self,
        page_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        image_prompt: Optional[str] = None,
        is_cover: Optional[bool] = None,
    ) -> Page:
        changes = {
            key: value
            for key, value in (
                ("name", name),
                ("description", description),
                ("image_prompt", image_prompt),
                ("is_cover", is_cover),
            )
            if value is not None
        }
        return self._replace_page(page_id, changes)

    def set_render_mode(self, page_id: str, mode: RenderMode) -> Page:
        return self._replace_page(page_id, {"render_mode": RenderMode(mode)})

    def _replace_page(self, page_id: str, changes: Dict[str, Any]) -> Page:
        current = self.get_page(page_id)
        if not changes:
            return current
        # id comes from the current record, never from the changes
        updated = Page.model_validate({**current.model_dump(), **changes, "id": current.id})
        self.require_session().entries[page_id].page = updated
        self._changed()
        return updated

    def delete_page(self, page_id: str) -> Entry:
        """Remove a page together with its matching asset."""
        session = self.require_session()
        self.get_page(page_id)
        removed = session.entries.pop(page_id)
        session.page_order.remove(page_id)
        if removed.asset is not None:
            session.asset_order.remove(page_id)
        self._changed()
        return removed

    # -------------------------
    # Assets
    # -------------------------

    def assets(self, asset_type: Optional[AssetType] = None) -> List[Asset]:
        session = self.require_session()
        found = [session.entries[aid].asset for aid in session.asset_order]
        if asset_type is None:
            return list(found)  # type: ignore[arg-type]
        wanted = AssetType(asset_type)
        return [a for a in found if a is not None and a.type is wanted]

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        if self.session is None:
            return None
        entry = self.session.entries.get(asset_id)
        return entry.asset if entry else None

    def upsert_asset(self, asset: Asset, *, at_start: bool = False) -> Asset:
        session = self.require_session()
        entry = session.entries.get(asset.id)
        if asset.type is not AssetType.MOCKUP:
            if entry is None or entry.page is None:
                raise UnknownRecordError(f"No page '{asset.id}' to attach the asset to.")
        elif entry is None:
            entry = session.entries[asset.id] = Entry()

        if entry.asset is None:
            if at_start:
                session.asset_order.insert(0, asset.id)
            else:
                session.asset_order.append(asset.id)
        entry.asset = asset
        self._changed()
        return asset

    def update_asset(self, asset_id: str, **changes: Any) -> Optional[Asset]:
        """Merge changes into an existing asset by id; None when it no longer exists."""
        entry = self.require_session().entries.get(asset_id)
        if entry is None or entry.asset is None:
            return None
        entry.asset = Asset.model_validate({**entry.asset.model_dump(), **changes, "id": asset_id})
        self._changed()
        return entry.asset

    def remove_asset(self, asset_id: str) -> Optional[Asset]:
        session = self.require_session()
        entry = session.entries.get(asset_id)
        if entry is None or entry.asset is None:
            return None
        removed = entry.asset
        session.asset_order.remove(asset_id)
        if entry.page is None:
            del session.entries[asset_id]
        else:
            entry.asset = None
        self._changed()
        return removed

    # -------------------------
    # Ideas (session only, never persisted)
    # -------------------------

    def ideas(self) -> List[GeneratedIdea]:
        return list(self.require_session().ideas)

    def set_ideas(self, ideas: Iterable[GeneratedIdea]) -> None:
        self.require_session().ideas = list(ideas)

    def edit_idea(self, index: int, *, title: Optional[str] = None, prompt: Optional[str] = None) -> GeneratedIdea:
        session = self.require_session()
        idea = self.idea(index)
        changes = {k: v for k, v in (("title", title), ("prompt", prompt)) if v is not None}
        session.ideas[index] = idea.model_copy(update=changes)
        return session.ideas[index]

    def remove_idea(self, index: int) -> GeneratedIdea:
        self.idea(index)
        return self.require_session().ideas.pop(index)

    def idea(self, index: int) -> GeneratedIdea:
        ideas = self.require_session().ideas
        if not 0 <= index < len(ideas):
            raise UnknownRecordError(f"No idea at index {index}.")
        return ideas[index]

    # -------------------------
    # Snapshot
    # -------------------------

    def snapshot(self) -> Project:
        session = self.require_session()
        return Project(
            id=session.project_id,
            timestamp=now_iso(),
            configuration=session.configuration.model_copy(deep=True),
            plan=session.plan.model_copy(deep=True),
            pages=[p.model_copy(deep=True) for p in self.pages()],
            assets=[a.model_copy(deep=True) for a in self.assets()],
        )


def _sanitize_loaded_asset(asset: Asset) -> Optional[Asset]:
    """Placeholders persisted mid-flight: drop empty ones, settle ones holding a payload."""
    if not asset.loading:
        return asset.model_copy(deep=True)
    if not asset.payload:
        return None
    return asset.model_copy(update={"loading": False})


__all__ = ["ProjectStore", "Session", "Entry"]
