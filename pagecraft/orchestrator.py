from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Protocol, Set

from .directives import aspect_ratio_for, enhance
from .errors import (
    PagecraftError,
    ProviderError,
    ResponseParseError,
    SlotBusyError,
    ValidationGapError,
)
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
)
from .parsing import read_ideas, read_page_list, read_plan, read_single_page
from .persistence import ProjectSnapshotStore
from .prompts import (
    IDEA_KINDS,
    build_concept_task,
    build_extra_pages_task,
    build_ideas_task,
    build_plan_task,
)
from .schemas import IDEA_LIST_SHAPE, PAGE_LIST_SHAPE, PAGE_SHAPE, PLAN_SHAPE
from .slots import (
    EXTRA_PAGES_SLOT,
    IDEAS_SLOT,
    MOCKUP_SLOT,
    PLAN_SLOT,
    SlotPhase,
    SlotRegistry,
    concept_slot,
    image_slot,
)
from .store import ProjectStore, Session

logger = logging.getLogger(__name__)


PLAN_NOTICE = (
    "Something went wrong generating your plan. Please try again. "
    "If the issue persists, try a simpler theme."
)
IMAGE_NOTICE = "Failed to generate image. Please try again."
MOCKUP_NOTICE = "Failed to generate mockup. Please try a different scene or image."
EXTRA_PAGES_NOTICE = "Failed to generate extra pages."
CONCEPT_NOTICE = "Could not regenerate concept."
IDEAS_NOTICE = "Failed to generate ideas."
DISCARDED_NOTICE = "The project changed while generating; the result was discarded."

_GENERATION_FAILURES = (ProviderError, ResponseParseError)


class Provider(Protocol):
    def ensure_credential(self) -> str: ...

    async def request_structured_plan(self, task: str, response_schema: Any) -> str: ...

    async def request_image(self, prompt: str, aspect_ratio: str, reference: Optional[str] = None) -> str: ...


@dataclass
class GenerationResult:
    status: str  # "fulfilled" | "rolled_back" | "skipped" | "discarded"
    value: Any = None
    notice: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {"fulfilled", "skipped"}


class GenerationOrchestrator:
    """
    Sequences every generation: slot claim, placeholder, provider call,
    parse, merge by id, release. Persistence follows every store mutation.
    """

    def __init__(
        self,
        provider: Provider,
        snapshots: ProjectSnapshotStore,
        *,
        store: Optional[ProjectStore] = None,
    ) -> None:
        self.provider = provider
        self.snapshots = snapshots
        self.store = store or ProjectStore()
        self.slots = SlotRegistry()
        self._pending: Set[asyncio.Task] = set()
        self.store.subscribe(self._on_store_change)

    # -------------------------------------------------
    # Persistence (fire-and-forget)
    # -------------------------------------------------

    def _on_store_change(self, session: Session) -> None:
        project = self.store.snapshot()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save_now(project)
            return
        task = loop.create_task(self._save(project))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, project: Project) -> None:
        try:
            await self.snapshots.save(project)
        except (PagecraftError, ValueError) as exc:
            logger.warning("Persisting project %s failed; in-memory state kept: %s", project.id, exc)

    def _save_now(self, project: Project) -> None:
        try:
            self.snapshots.save_sync(project)
        except (PagecraftError, ValueError) as exc:
            logger.warning("Persisting project %s failed; in-memory state kept: %s", project.id, exc)

    async def drain(self) -> None:
        """Wait for every scheduled snapshot write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # -------------------------------------------------
    # Single-flight
    # -------------------------------------------------

    @contextmanager
    def _occupy(self, slot: str) -> Iterator[None]:
        if self.slots.is_busy(slot):
            raise SlotBusyError(slot)
        self.provider.ensure_credential()
        self.slots.claim(slot)
        try:
            yield
        finally:
            self.slots.release(slot)

    def is_generating(self, page_id: str) -> bool:
        return self.slots.is_busy(image_slot(page_id))

    def _is_current(self, session: Session) -> bool:
        return self.store.session is session

    def _fail(self, slot: str, notice: str, exc: Exception) -> GenerationResult:
        self.slots.advance(slot, SlotPhase.ROLLED_BACK)
        logger.warning("Generation for slot %s rolled back: %s", slot, exc)
        return GenerationResult("rolled_back", notice=notice)

    def _discard(self, slot: str, what: str) -> GenerationResult:
        self.slots.advance(slot, SlotPhase.ROLLED_BACK)
        logger.warning("Discarding %s result for slot %s: project changed while generating", what, slot)
        return GenerationResult("discarded", notice=DISCARDED_NOTICE)

    # -------------------------------------------------
    # Plan finalization / quick start
    # -------------------------------------------------

    async def finalize_plan(self, configuration: WizardConfiguration) -> GenerationResult:
        missing = [
            label
            for label, value in (
                ("product type", configuration.product_type),
                ("target audience", configuration.target_audience),
                ("art style", configuration.art_style),
            )
            if not value.strip()
        ]
        if missing:
            raise ValidationGapError(f"Missing {', '.join(missing)}.")

        with self._occupy(PLAN_SLOT):
            self.slots.advance(PLAN_SLOT, SlotPhase.AWAITING_PROVIDER)
            try:
                raw = await self.provider.request_structured_plan(build_plan_task(configuration), PLAN_SHAPE)
                data = read_plan(raw)
            except _GENERATION_FAILURES as exc:
                return self._fail(PLAN_SLOT, PLAN_NOTICE, exc)

            pages = [
                _new_page("page", draft, render_mode=_default_mode(draft["is_cover"]))
                for draft in data["pages"]
            ]
            plan = Plan(
                title=data["title"],
                concept=data["concept"],
                palette=data["palette"],
                monetization_strategies=data["monetization_strategies"],
            )
            self.store.create_project(configuration, plan, pages)
            self.slots.advance(PLAN_SLOT, SlotPhase.FULFILLED)
            return GenerationResult("fulfilled", self.store.snapshot())

    def quick_start(self, configuration: Optional[WizardConfiguration] = None) -> Project:
        self.store.quick_start(configuration)
        return self.store.snapshot()

    def restart(self) -> None:
        self.store.restart()

    # -------------------------------------------------
    # Page images
    # -------------------------------------------------

    async def generate_page_image(self, page_id: str, *, force: bool = False) -> GenerationResult:
        page = self.store.get_page(page_id)
        if not page.image_prompt.strip():
            raise ValidationGapError(f"Page '{page.name}' has no image prompt.")
        slot = image_slot(page_id)
        if self.slots.is_busy(slot):
            raise SlotBusyError(slot)

        existing = self.store.get_asset(page_id)
        if existing is not None and existing.payload and not force:
            return GenerationResult("skipped", existing)

        with self._occupy(slot):
            session = self.store.require_session()
            prior = existing.model_copy(deep=True) if existing is not None else None
            asset_type = page.resolved_asset_type()
            ratio = aspect_ratio_for(session.configuration.publication_size, asset_type)

            # the id is the page id, fixed before the call; merge happens by id
            self.store.upsert_asset(
                Asset(
                    id=page.id,
                    prompt=page.image_prompt,
                    type=asset_type,
                    payload=prior.payload if prior else "",
                    loading=True,
                    aspect_ratio=ratio,
                )
            )
            self.slots.advance(slot, SlotPhase.AWAITING_PROVIDER)

            final_prompt = enhance(page.image_prompt, asset_type, page.resolved_render_mode())
            try:
                payload = await self.provider.request_image(final_prompt, ratio)
            except _GENERATION_FAILURES as exc:
                self._rollback_asset(session, page.id, prior)
                return self._fail(slot, IMAGE_NOTICE, exc)
            except BaseException:
                self._rollback_asset(session, page.id, prior)
                raise

            if not self._is_current(session):
                return self._discard(slot, "image")
            updated = self.store.update_asset(page.id, payload=payload, loading=False)
            if updated is None:
                return self._discard(slot, "image")

            self.slots.advance(slot, SlotPhase.FULFILLED)
            logger.info("Generated %s image for page %s", asset_type.value, page.id)
            return GenerationResult("fulfilled", updated)

    def _rollback_asset(self, session: Session, asset_id: str, prior: Optional[Asset]) -> None:
        if not self._is_current(session):
            return
        if prior is None:
            self.store.remove_asset(asset_id)
        elif self.store.has_page(asset_id):
            self.store.upsert_asset(prior)

    # -------------------------------------------------
    # Mockups
    # -------------------------------------------------

    async def generate_mockup(self, source_asset_id: str, scene: str) -> GenerationResult:
        if not scene.strip():
            raise ValidationGapError("Choose a scene for the mockup.")
        source = self.store.get_asset(source_asset_id)
        if source is None or not source.is_ready or source.type is AssetType.MOCKUP:
            raise ValidationGapError("Select a finished design to place in the mockup.")

        with self._occupy(MOCKUP_SLOT):
            session = self.store.require_session()
            mockup_id = mint_id("mockup")
            ratio = aspect_ratio_for(session.configuration.publication_size, AssetType.MOCKUP)
            self.store.upsert_asset(
                Asset(
                    id=mockup_id,
                    prompt=f"Mockup: {scene.strip()}",
                    type=AssetType.MOCKUP,
                    loading=True,
                    aspect_ratio=ratio,
                ),
                at_start=True,
            )
            self.slots.advance(MOCKUP_SLOT, SlotPhase.AWAITING_PROVIDER)

            try:
                payload = await self.provider.request_image(
                    enhance(scene, AssetType.MOCKUP),
                    ratio,
                    reference=source.payload,
                )
            except _GENERATION_FAILURES as exc:
                self._rollback_asset(session, mockup_id, None)
                return self._fail(MOCKUP_SLOT, MOCKUP_NOTICE, exc)
            except BaseException:
                self._rollback_asset(session, mockup_id, None)
                raise

            if not self._is_current(session):
                return self._discard(MOCKUP_SLOT, "mockup")
            updated = self.store.update_asset(mockup_id, payload=payload, loading=False)
            if updated is None:
                return self._discard(MOCKUP_SLOT, "mockup")
            self.slots.advance(MOCKUP_SLOT, SlotPhase.FULFILLED)
            return GenerationResult("fulfilled", updated)

    # -------------------------------------------------
    # Page text generation
    # -------------------------------------------------

    async def generate_more_pages(self, count: int = 3) -> GenerationResult:
        if count < 1:
            raise ValidationGapError("Ask for at least one page.")
        session = self.store.require_session()

        with self._occupy(EXTRA_PAGES_SLOT):
            ids = [mint_id("extra") for _ in range(count)]
            self.slots.advance(EXTRA_PAGES_SLOT, SlotPhase.AWAITING_PROVIDER)
            task = build_extra_pages_task(session.plan, [p.name for p in self.store.pages()], count)
            try:
                drafts = read_page_list(await self.provider.request_structured_plan(task, PAGE_LIST_SHAPE))
            except _GENERATION_FAILURES as exc:
                return self._fail(EXTRA_PAGES_SLOT, EXTRA_PAGES_NOTICE, exc)

            if not self._is_current(session):
                return self._discard(EXTRA_PAGES_SLOT, "extra pages")
            pages = [
                Page(
                    id=page_id,
                    name=draft["name"],
                    description=draft["description"],
                    image_prompt=draft["image_prompt"],
                    is_cover=False,
                    render_mode=RenderMode.LINE_ART,
                )
                for page_id, draft in zip(ids, drafts)
            ]
            self.store.add_pages(pages)
            self.slots.advance(EXTRA_PAGES_SLOT, SlotPhase.FULFILLED)
            return GenerationResult("fulfilled", pages)

    async def regenerate_concept(self, page_id: str) -> GenerationResult:
        page = self.store.get_page(page_id)
        session = self.store.require_session()
        slot = concept_slot(page_id)

        with self._occupy(slot):
            self.slots.advance(slot, SlotPhase.AWAITING_PROVIDER)
            task = build_concept_task(session.plan, page.name)
            try:
                draft = read_single_page(await self.provider.request_structured_plan(task, PAGE_SHAPE))
            except _GENERATION_FAILURES as exc:
                return self._fail(slot, CONCEPT_NOTICE, exc)

            if not self._is_current(session) or not self.store.has_page(page_id):
                return self._discard(slot, "concept")
            updated = self.store.edit_page(
                page_id,
                name=draft["name"],
                description=draft["description"],
                image_prompt=draft["image_prompt"],
            )
            self.slots.advance(slot, SlotPhase.FULFILLED)
            return GenerationResult("fulfilled", updated)

    # -------------------------------------------------
    # Idea generator
    # -------------------------------------------------

    async def generate_ideas(
        self,
        kind: str,
        style: RenderMode = RenderMode.COLOR,
        instructions: str = "",
        count: int = 5,
    ) -> GenerationResult:
        if kind not in IDEA_KINDS:
            raise ValidationGapError(f"Idea kind must be one of {', '.join(IDEA_KINDS)}.")
        if count < 1:
            raise ValidationGapError("Ask for at least one idea.")
        session = self.store.require_session()
        style = _idea_style(kind, RenderMode(style))

        with self._occupy(IDEAS_SLOT):
            self.slots.advance(IDEAS_SLOT, SlotPhase.AWAITING_PROVIDER)
            task = build_ideas_task(session.plan, kind, style, instructions, count)
            try:
                drafts = read_ideas(await self.provider.request_structured_plan(task, IDEA_LIST_SHAPE))
            except _GENERATION_FAILURES as exc:
                return self._fail(IDEAS_SLOT, IDEAS_NOTICE, exc)

            if not self._is_current(session):
                return self._discard(IDEAS_SLOT, "ideas")
            ideas = [GeneratedIdea(title=d["title"], prompt=d["prompt"], kind=kind, style=style) for d in drafts]
            self.store.set_ideas(ideas)
            self.slots.advance(IDEAS_SLOT, SlotPhase.FULFILLED)
            return GenerationResult("fulfilled", ideas)

    def promote_idea(self, index: int) -> Page:
        idea = self.store.idea(index)
        return self.add_page_from_prompt(
            idea.title,
            idea.prompt,
            render_mode=idea.style,
            asset_type=_IDEA_ASSET_TYPES.get(idea.kind),
        )

    def add_page_from_prompt(
        self,
        name: str,
        prompt: str,
        *,
        render_mode: RenderMode = RenderMode.LINE_ART,
        asset_type: Optional[AssetType] = None,
    ) -> Page:
        if not name.strip() or not prompt.strip():
            raise ValidationGapError("A page needs a name and a prompt.")
        page = Page(
            id=mint_id("custom"),
            name=name.strip(),
            description="Added from Prompt Generator",
            image_prompt=prompt.strip(),
            is_cover=False,
            render_mode=render_mode,
            asset_type=asset_type,
        )
        return self.store.add_page(page)

    def add_manual_page(self, name: str, prompt: str, *, description: str = "Custom user page", at_start: bool = False) -> Page:
        if not name.strip() or not prompt.strip():
            raise ValidationGapError("A page needs a name and a prompt.")
        page = Page(
            id=mint_id("manual"),
            name=name.strip(),
            description=description,
            image_prompt=prompt.strip(),
            is_cover=False,
            render_mode=RenderMode.LINE_ART,
        )
        return self.store.add_page(page, at_start=at_start)

    # -------------------------------------------------
    # Saved projects
    # -------------------------------------------------

    async def list_projects(self) -> List[Project]:
        await self.drain()
        return await self.snapshots.list_all()

    async def load_project(self, project_id: str) -> Project:
        await self.drain()
        project = await self.snapshots.load(project_id)
        self.store.open_project(project)
        logger.info("Loaded project %s", project_id)
        return self.store.snapshot()

    async def delete_project(self, project_id: str) -> bool:
        if self.store.active_project_id == project_id:
            self.store.restart()
        await self.drain()
        return await self.snapshots.delete(project_id)


# -------------------------------------------------
# Helpers
# -------------------------------------------------

_IDEA_ASSET_TYPES = {"cover": AssetType.COVER, "sticker": AssetType.STICKER}


def _default_mode(is_cover: bool) -> RenderMode:
    return RenderMode.COLOR if is_cover else RenderMode.LINE_ART


def _idea_style(kind: str, style: RenderMode) -> RenderMode:
    if kind == "cover":
        return RenderMode.COLOR
    if kind == "page":
        return RenderMode.LINE_ART
    return RenderMode.COLOR if style is RenderMode.COLOR else RenderMode.LINE_ART


def _new_page(prefix: str, draft: dict, *, render_mode: RenderMode) -> Page:
    return Page(
        id=mint_id(prefix),
        name=draft["name"],
        description=draft["description"],
        image_prompt=draft["image_prompt"],
        is_cover=draft["is_cover"],
        render_mode=render_mode,
    )


__all__ = ["GenerationOrchestrator", "GenerationResult", "Provider"]
