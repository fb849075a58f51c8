# tests/test_orchestrator.py
from __future__ import annotations

import asyncio
import json
import logging

import pytest

from conftest import PNG_URL, page_dict, plan_reply
from pagecraft.directives import COLOR_DIRECTIVES, LINE_ART_DIRECTIVES
from pagecraft.errors import (
    MissingCredentialError,
    NoImageReturnedError,
    PersistenceWriteError,
    ProviderError,
    SlotBusyError,
    UnknownRecordError,
    ValidationGapError,
)
from pagecraft.models import (
    Asset,
    AssetType,
    Page,
    PublicationSize,
    RenderMode,
    WizardConfiguration,
)
from pagecraft.orchestrator import (
    CONCEPT_NOTICE,
    IMAGE_NOTICE,
    PLAN_NOTICE,
    GenerationOrchestrator,
)
from pagecraft.persistence import ProjectSnapshotStore
from pagecraft.slots import SlotPhase, image_slot


def _config(**overrides) -> WizardConfiguration:
    base = dict(
        product_type="Coloring Book",
        theme="Ocean",
        target_audience="Kids",
        art_style="Cartoon",
        publication_size=PublicationSize.PORTRAIT,
    )
    base.update(overrides)
    return WizardConfiguration(**base)


def _with_page(orchestrator: GenerationOrchestrator, page_id: str = "p1", **fields) -> Page:
    orchestrator.store.quick_start(_config())
    page = Page(id=page_id, name=fields.pop("name", "Reef"), image_prompt=fields.pop("image_prompt", "a coral reef"), **fields)
    return orchestrator.store.add_page(page)


def _ready_asset(orchestrator: GenerationOrchestrator, page_id: str = "p1", payload: str = PNG_URL) -> Asset:
    return orchestrator.store.upsert_asset(
        Asset(id=page_id, prompt="a coral reef", type=AssetType.COLORING_PAGE, payload=payload)
    )


# ---------- Plan finalization ----------
def test_finalize_plan_end_to_end(orchestrator, provider, snapshots):
    provider.text_replies.append(plan_reply(6))

    async def main():
        result = await orchestrator.finalize_plan(_config())
        await orchestrator.drain()
        return result

    result = asyncio.run(main())

    assert result.status == "fulfilled"
    pages = orchestrator.store.pages()
    assert len(pages) == 6
    assert len({p.id for p in pages}) == 6
    assert all(p.id.startswith("page_") for p in pages)
    cover = [p for p in pages if p.is_cover]
    assert len(cover) == 1
    assert cover[0].render_mode is RenderMode.COLOR
    assert all(p.render_mode is RenderMode.LINE_ART for p in pages if not p.is_cover)
    assert orchestrator.store.assets() == []

    session = orchestrator.store.session
    assert session.plan.title == "Ocean Friends"
    assert session.plan.monetization_strategies == ["Sell on marketplaces", "Bundle with stickers"]

    saved = snapshots.load_sync(session.project_id)
    assert [p.id for p in saved.pages] == [p.id for p in pages]


def test_finalize_plan_sends_configuration_in_task(orchestrator, provider):
    provider.text_replies.append(plan_reply(2, fenced=False))
    asyncio.run(orchestrator.finalize_plan(_config(theme="", publication_size=PublicationSize.CUSTOM, custom_dimensions="6x9")))

    _, task, _ = provider.calls[0]
    assert "Coloring Book" in task
    assert "General Creative" in task
    assert "Custom Size: 6x9" in task


def test_finalize_plan_rejects_missing_inputs_without_calling_provider(orchestrator, provider):
    with pytest.raises(ValidationGapError):
        asyncio.run(orchestrator.finalize_plan(_config(art_style="  ")))
    assert provider.calls == []
    assert orchestrator.store.session is None


def test_missing_credential_fails_before_any_work(orchestrator, provider):
    provider.credential = None
    with pytest.raises(MissingCredentialError):
        asyncio.run(orchestrator.finalize_plan(_config()))
    assert provider.calls == []
    assert orchestrator.slots.busy_slots() == {}


def test_unparseable_plan_leaves_no_project(orchestrator, provider, state_dir):
    provider.text_replies.append("Sorry, I cannot help with that.")

    async def main():
        result = await orchestrator.finalize_plan(_config())
        await orchestrator.drain()
        return result

    result = asyncio.run(main())
    assert result.status == "rolled_back"
    assert result.notice == PLAN_NOTICE
    assert orchestrator.store.session is None
    assert not state_dir.exists() or list(state_dir.glob("*.json")) == []


def test_quick_start_persists_without_running_loop(orchestrator, snapshots):
    project = orchestrator.quick_start()
    assert project.plan.title == "Untitled Creative Project"
    assert project.pages == []
    assert snapshots.load_sync(project.id).id == project.id


# ---------- Page images ----------
def test_generate_page_image_applies_directives_and_ratio(orchestrator, provider):
    _with_page(orchestrator)

    result = asyncio.run(orchestrator.generate_page_image("p1"))

    assert result.status == "fulfilled"
    kind, prompt, ratio, reference = provider.calls[0]
    assert kind == "image"
    assert ratio == "3:4"
    assert reference is None
    assert "a coral reef" in prompt
    assert all(token in prompt for token in LINE_ART_DIRECTIVES)
    assert not any(token in prompt for token in COLOR_DIRECTIVES)

    asset = orchestrator.store.get_asset("p1")
    assert asset.payload == PNG_URL
    assert asset.loading is False
    assert asset.type is AssetType.COLORING_PAGE
    assert not orchestrator.is_generating("p1")


def test_placeholder_is_visible_while_awaiting_provider(orchestrator, provider):
    _with_page(orchestrator)

    async def main():
        provider.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.generate_page_image("p1"))
        await asyncio.sleep(0)
        placeholder = orchestrator.store.get_asset("p1")
        phase = orchestrator.slots.phase(image_slot("p1"))
        provider.gate.set()
        return placeholder, phase, await task

    placeholder, phase, result = asyncio.run(main())
    assert placeholder.loading is True
    assert placeholder.payload == ""
    assert phase is SlotPhase.AWAITING_PROVIDER
    assert result.status == "fulfilled"


def test_second_request_for_busy_slot_is_rejected(orchestrator, provider):
    _with_page(orchestrator)

    async def main():
        provider.gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.generate_page_image("p1"))
        await asyncio.sleep(0)
        with pytest.raises(SlotBusyError) as excinfo:
            await orchestrator.generate_page_image("p1", force=True)
        calls_while_busy = len(provider.calls)
        provider.gate.set()
        await first
        return excinfo.value, calls_while_busy

    err, calls_while_busy = asyncio.run(main())
    assert err.slot == image_slot("p1")
    assert calls_while_busy == 1
    assert len(provider.calls) == 1


def test_different_pages_generate_concurrently(orchestrator, provider):
    _with_page(orchestrator, "p1")
    orchestrator.store.add_page(Page(id="p2", name="Kelp", image_prompt="a kelp forest"))

    async def main():
        return await asyncio.gather(
            orchestrator.generate_page_image("p1"),
            orchestrator.generate_page_image("p2"),
        )

    results = asyncio.run(main())
    assert [r.status for r in results] == ["fulfilled", "fulfilled"]
    assert {a.id for a in orchestrator.store.assets()} == {"p1", "p2"}


def test_failed_first_generation_removes_placeholder(orchestrator, provider):
    _with_page(orchestrator)
    provider.image_replies.append(ProviderError("rate limited"))

    result = asyncio.run(orchestrator.generate_page_image("p1"))

    assert result.status == "rolled_back"
    assert result.notice == IMAGE_NOTICE
    assert orchestrator.store.get_asset("p1") is None
    assert orchestrator.store.assets() == []
    assert not orchestrator.is_generating("p1")


def test_failed_regeneration_restores_prior_asset(orchestrator, provider):
    _with_page(orchestrator)
    _ready_asset(orchestrator, payload="X")
    provider.image_replies.append(NoImageReturnedError("No image data found in response."))

    result = asyncio.run(orchestrator.generate_page_image("p1", force=True))

    assert result.status == "rolled_back"
    asset = orchestrator.store.get_asset("p1")
    assert (asset.id, asset.payload, asset.loading) == ("p1", "X", False)
    assert len(orchestrator.store.assets()) == 1


def test_existing_image_is_skipped_without_force(orchestrator, provider):
    _with_page(orchestrator)
    _ready_asset(orchestrator)

    result = asyncio.run(orchestrator.generate_page_image("p1"))

    assert result.status == "skipped"
    assert result.ok
    assert provider.calls == []


def test_cover_page_uses_color_directives(orchestrator, provider):
    _with_page(orchestrator, is_cover=True)

    asyncio.run(orchestrator.generate_page_image("p1"))

    prompt = provider.calls[0][1]
    assert all(token in prompt for token in COLOR_DIRECTIVES)
    assert not any(token in prompt for token in LINE_ART_DIRECTIVES)
    assert orchestrator.store.get_asset("p1").type is AssetType.COVER


def test_result_is_discarded_when_page_deleted_mid_flight(orchestrator, provider):
    _with_page(orchestrator)

    async def main():
        provider.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.generate_page_image("p1"))
        await asyncio.sleep(0)
        orchestrator.store.delete_page("p1")
        provider.gate.set()
        return await task

    result = asyncio.run(main())
    assert result.status == "discarded"
    assert orchestrator.store.get_asset("p1") is None
    assert not orchestrator.store.has_page("p1")
    assert orchestrator.store.assets() == []


def test_result_is_discarded_after_restart(orchestrator, provider):
    _with_page(orchestrator)

    async def main():
        provider.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.generate_page_image("p1"))
        await asyncio.sleep(0)
        orchestrator.restart()
        orchestrator.quick_start()
        provider.gate.set()
        return await task

    result = asyncio.run(main())
    assert result.status == "discarded"
    assert orchestrator.store.assets() == []


def test_blank_image_prompt_is_rejected_before_provider(orchestrator, provider):
    _with_page(orchestrator)
    orchestrator.store.edit_page("p1", image_prompt="   ")

    with pytest.raises(ValidationGapError):
        asyncio.run(orchestrator.generate_page_image("p1"))

    assert provider.calls == []
    assert orchestrator.store.get_asset("p1") is None
    assert not orchestrator.is_generating("p1")


def test_unknown_page_raises(orchestrator):
    orchestrator.quick_start()
    with pytest.raises(UnknownRecordError):
        asyncio.run(orchestrator.generate_page_image("nope"))


# ---------- Mockups ----------
def test_generate_mockup_uses_reference_and_prepends(orchestrator, provider):
    _with_page(orchestrator)
    _ready_asset(orchestrator)
    provider.image_replies.append("data:image/png;base64,bW9ja3Vw")

    result = asyncio.run(orchestrator.generate_mockup("p1", "on a wooden desk"))

    assert result.status == "fulfilled"
    mockup = result.value
    assert mockup.id.startswith("mockup_")
    assert mockup.type is AssetType.MOCKUP
    assert mockup.prompt == "Mockup: on a wooden desk"
    assert mockup.aspect_ratio == "4:3"
    assert orchestrator.store.assets()[0].id == mockup.id

    _, prompt, ratio, reference = provider.calls[0]
    assert ratio == "4:3"
    assert reference == PNG_URL
    assert "Scene: on a wooden desk." in prompt


def test_mockup_requires_scene_and_finished_source(orchestrator, provider):
    _with_page(orchestrator)
    with pytest.raises(ValidationGapError):
        asyncio.run(orchestrator.generate_mockup("p1", "on a desk"))

    _ready_asset(orchestrator)
    with pytest.raises(ValidationGapError):
        asyncio.run(orchestrator.generate_mockup("p1", "   "))
    assert provider.calls == []


def test_failed_mockup_removes_placeholder(orchestrator, provider):
    _with_page(orchestrator)
    _ready_asset(orchestrator)
    provider.image_replies.append(ProviderError("boom"))

    result = asyncio.run(orchestrator.generate_mockup("p1", "on a desk"))

    assert result.status == "rolled_back"
    assert [a.id for a in orchestrator.store.assets()] == ["p1"]


# ---------- Extra pages / concept ----------
def test_generate_more_pages_appends_line_art_pages(orchestrator, provider):
    _with_page(orchestrator)
    provider.text_replies.append(
        json.dumps([page_dict("Shark", "a shark", cover=True), page_dict("Crab", "a crab"), page_dict("Eel", "an eel")])
    )

    result = asyncio.run(orchestrator.generate_more_pages(3))

    assert result.status == "fulfilled"
    pages = orchestrator.store.pages()
    assert [p.name for p in pages] == ["Reef", "Shark", "Crab", "Eel"]
    for page in pages[1:]:
        assert page.id.startswith("extra_")
        assert page.is_cover is False
        assert page.render_mode is RenderMode.LINE_ART
    assert "Reef" in provider.calls[0][1]


def test_generate_more_pages_failure_leaves_pages(orchestrator, provider):
    _with_page(orchestrator)
    provider.text_replies.append("[]")

    result = asyncio.run(orchestrator.generate_more_pages())

    assert result.status == "rolled_back"
    assert [p.id for p in orchestrator.store.pages()] == ["p1"]


def test_regenerate_concept_keeps_id(orchestrator, provider):
    _with_page(orchestrator)
    provider.text_replies.append(json.dumps(page_dict("Lagoon", "a calm lagoon")))

    result = asyncio.run(orchestrator.regenerate_concept("p1"))

    assert result.status == "fulfilled"
    page = orchestrator.store.get_page("p1")
    assert (page.id, page.name, page.image_prompt) == ("p1", "Lagoon", "a calm lagoon")


def test_regenerate_concept_failure_keeps_page(orchestrator, provider):
    _with_page(orchestrator)
    provider.text_replies.append(ProviderError("timeout"))

    result = asyncio.run(orchestrator.regenerate_concept("p1"))

    assert result.notice == CONCEPT_NOTICE
    assert orchestrator.store.get_page("p1").name == "Reef"


# ---------- Ideas ----------
def test_generate_and_promote_sticker_idea(orchestrator, provider):
    orchestrator.quick_start()
    provider.text_replies.append(json.dumps([{"title": "Happy Octopus", "prompt": "a smiling octopus"}]))

    result = asyncio.run(orchestrator.generate_ideas("sticker", RenderMode.LINE_ART, "cute"))

    assert result.status == "fulfilled"
    idea = orchestrator.store.ideas()[0]
    assert (idea.kind, idea.style) == ("sticker", RenderMode.LINE_ART)
    assert "BLACK & WHITE LINE ART Sticker" in provider.calls[0][1]

    page = orchestrator.promote_idea(0)
    assert page.id.startswith("custom_")
    assert page.asset_type is AssetType.STICKER
    assert page.render_mode is RenderMode.LINE_ART
    assert page.resolved_asset_type() is AssetType.STICKER


def test_cover_ideas_are_always_color(orchestrator, provider):
    orchestrator.quick_start()
    provider.text_replies.append(json.dumps({"ideas": [{"title": "Moon", "prompt": "a moonlit sea"}]}))

    asyncio.run(orchestrator.generate_ideas("cover", RenderMode.LINE_ART))

    page = orchestrator.promote_idea(0)
    assert page.render_mode is RenderMode.COLOR
    assert page.asset_type is AssetType.COVER


def test_failed_ideas_keep_previous_list(orchestrator, provider):
    orchestrator.quick_start()
    provider.text_replies.append(json.dumps([{"title": "One", "prompt": "first"}]))
    asyncio.run(orchestrator.generate_ideas("page"))
    provider.text_replies.append(ProviderError("down"))

    result = asyncio.run(orchestrator.generate_ideas("page"))

    assert result.status == "rolled_back"
    assert [i.title for i in orchestrator.store.ideas()] == ["One"]


def test_unknown_idea_kind_is_rejected(orchestrator, provider):
    orchestrator.quick_start()
    with pytest.raises(ValidationGapError):
        asyncio.run(orchestrator.generate_ideas("poster"))
    assert provider.calls == []


def test_add_manual_page(orchestrator):
    orchestrator.quick_start()
    orchestrator.add_manual_page("First", "a sunrise")
    page = orchestrator.add_manual_page("Top", "a sunset", at_start=True)

    assert page.id.startswith("manual_")
    assert [p.name for p in orchestrator.store.pages()] == ["Top", "First"]
    with pytest.raises(ValidationGapError):
        orchestrator.add_manual_page("", "x")


# ---------- Saved projects ----------
def test_load_list_and_delete_projects(orchestrator, provider, snapshots):
    provider.text_replies.append(plan_reply(3))

    async def build():
        await orchestrator.finalize_plan(_config())
        await orchestrator.generate_page_image(orchestrator.store.pages()[0].id)
        await orchestrator.drain()
        return orchestrator.store.session.project_id

    project_id = asyncio.run(build())

    other = GenerationOrchestrator(provider, snapshots)

    async def reopen():
        listed = await other.list_projects()
        loaded = await other.load_project(project_id)
        return listed, loaded

    listed, loaded = asyncio.run(reopen())
    assert [p.id for p in listed] == [project_id]
    assert len(loaded.pages) == 3
    assert len(loaded.assets) == 1
    assert other.store.active_project_id == project_id

    assert asyncio.run(other.delete_project(project_id)) is True
    assert other.store.session is None
    assert snapshots.list_sync() == []


def test_persistence_failure_keeps_in_memory_state(provider, state_dir, caplog):
    class BrokenStore(ProjectSnapshotStore):
        def save_sync(self, project):
            raise PersistenceWriteError("disk full")

    orch = GenerationOrchestrator(provider, BrokenStore(state_dir))
    _with_page(orch)

    async def main():
        result = await orch.generate_page_image("p1")
        await orch.drain()
        return result

    with caplog.at_level(logging.WARNING, logger="pagecraft.orchestrator"):
        result = asyncio.run(main())

    assert result.status == "fulfilled"
    assert orch.store.get_asset("p1").payload == PNG_URL
    assert "disk full" in caplog.text


def test_add_page_from_prompt(orchestrator):
    orchestrator.quick_start()
    page = orchestrator.add_page_from_prompt("  Star ", " a starfish ", render_mode=RenderMode.COLOR)

    assert page.id.startswith("custom_")
    assert (page.name, page.image_prompt) == ("Star", "a starfish")
    assert page.resolved_asset_type() is AssetType.COLORING_PAGE
    assert orchestrator.store.pages()[-1].id == page.id
    with pytest.raises(ValidationGapError):
        orchestrator.add_page_from_prompt("Star", "  ")


def test_plan_and_configuration_edits_are_persisted(orchestrator, snapshots):
    _with_page(orchestrator)
    _ready_asset(orchestrator)
    seen = []
    orchestrator.store.subscribe(seen.append)

    async def main():
        orchestrator.store.update_plan(title="Deep Sea", concept="Creatures of the trench")
        orchestrator.store.update_configuration(theme="Abyss")
        await orchestrator.drain()

    asyncio.run(main())

    assert len(seen) == 2
    saved = snapshots.load_sync(orchestrator.store.active_project_id)
    assert (saved.plan.title, saved.plan.concept) == ("Deep Sea", "Creatures of the trench")
    assert saved.configuration.theme == "Abyss"
    assert saved.configuration.product_type == "Coloring Book"
    assert [p.id for p in saved.pages] == ["p1"]
    assert [(a.id, a.payload) for a in saved.assets] == [("p1", PNG_URL)]
