from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .errors import PagecraftError
from .export import (
    ExportView,
    build_archive,
    build_mockup_archive,
    file_stem,
    ideas_text,
    prompt_library_text,
)
from .models import AssetType, PublicationSize, RenderMode, WizardConfiguration
from .orchestrator import GenerationOrchestrator, GenerationResult
from .persistence import ProjectSnapshotStore
from .provider import GenerativeProvider


def build_orchestrator(state_dir: Optional[str] = None) -> GenerationOrchestrator:
    settings = Settings.from_env()
    if state_dir:
        settings.state_dir = Path(state_dir)
    return GenerationOrchestrator(GenerativeProvider(settings), ProjectSnapshotStore(settings.state_dir))


def _configuration(args: argparse.Namespace) -> WizardConfiguration:
    return WizardConfiguration(
        product_type=args.product_type or "",
        theme=args.theme or "",
        target_audience=args.audience or "",
        art_style=args.style or "",
        publication_size=PublicationSize(args.size),
        custom_dimensions=args.dimensions,
    )


def _report(result: GenerationResult, label: str) -> bool:
    if result.ok:
        print(f"[{result.status}] {label}")
    else:
        print(f"[{result.status}] {label}: {result.notice}")
    return result.ok


def _print_project(orch: GenerationOrchestrator) -> None:
    session = orch.store.require_session()
    print(f"{session.plan.title}  ({session.project_id})")
    if session.plan.concept:
        print(f"  {session.plan.concept}")
    print(f"  Format: {session.configuration.size_label()}")
    for page in orch.store.pages():
        asset = orch.store.get_asset(page.id)
        state = "ready" if asset and asset.is_ready else "no image"
        marker = "*" if page.is_cover else "-"
        print(f"  {marker} {page.id}  {page.name}  [{page.resolved_render_mode().value}, {state}]")
    for mockup in orch.store.assets(AssetType.MOCKUP):
        print(f"  ~ {mockup.id}  {mockup.prompt}")


# -------------------------------------------------
# Commands
# -------------------------------------------------

async def _cmd_plan(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    result = await orch.finalize_plan(_configuration(args))
    if not _report(result, "plan"):
        return 1
    _print_project(orch)
    return 0


async def _cmd_quickstart(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    orch.quick_start(_configuration(args))
    _print_project(orch)
    return 0


async def _cmd_list(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    projects = await orch.list_projects()
    if not projects:
        print("No saved projects.")
    for project in projects:
        print(f"{project.id}  {project.timestamp}  {project.plan.title}  ({len(project.pages)} pages)")
    return 0


async def _cmd_show(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    await orch.load_project(args.project_id)
    _print_project(orch)
    return 0


async def _cmd_generate(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    await orch.load_project(args.project_id)
    page_ids = args.page or [p.id for p in orch.store.pages()]
    failures = 0
    for page_id in page_ids:
        result = await orch.generate_page_image(page_id, force=args.force)
        if not _report(result, page_id):
            failures += 1
    return 1 if failures else 0


async def _cmd_mockup(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    await orch.load_project(args.project_id)
    result = await orch.generate_mockup(args.source_id, args.scene)
    label = result.value.id if result.value is not None else "mockup"
    return 0 if _report(result, label) else 1


async def _cmd_more_pages(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    await orch.load_project(args.project_id)
    result = await orch.generate_more_pages(args.count)
    if not _report(result, "extra pages"):
        return 1
    for page in result.value:
        print(f"  + {page.id}  {page.name}")
    return 0


async def _cmd_ideas(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    await orch.load_project(args.project_id)
    result = await orch.generate_ideas(args.kind, RenderMode(args.style), args.instructions, args.count)
    if not _report(result, "ideas"):
        return 1
    for i, idea in enumerate(result.value):
        print(f"{i}. {idea.title}\n   {idea.prompt}")
    for index in args.promote or []:
        page = orch.promote_idea(index)
        print(f"  + {page.id}  {page.name}")
    if args.out:
        Path(args.out).write_text(ideas_text(orch.store.require_session().plan, result.value), encoding="utf-8")
        print(f"Ideas written to: {args.out}")
    return 0


async def _cmd_delete(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    removed = await orch.delete_project(args.project_id)
    print("Deleted." if removed else "Nothing to delete.")
    return 0 if removed else 1


async def _cmd_export(orch: GenerationOrchestrator, args: argparse.Namespace) -> int:
    project = await orch.load_project(args.project_id)
    view = ExportView.from_project(project)
    stem = file_stem(view.plan.title)

    if args.kind == "kit":
        out = Path(args.out or f"{stem}_Kit.zip")
        out.write_bytes(build_archive(view))
    elif args.kind == "mockups":
        out = Path(args.out or "project_mockups_bundle.zip")
        out.write_bytes(build_mockup_archive(view.mockups()))
    else:
        out = Path(args.out or f"{stem}_Prompts.txt")
        out.write_text(prompt_library_text(view), encoding="utf-8")
    print(f"Exported to: {out}")
    return 0


_COMMANDS = {
    "plan": _cmd_plan,
    "quickstart": _cmd_quickstart,
    "list": _cmd_list,
    "show": _cmd_show,
    "generate": _cmd_generate,
    "mockup": _cmd_mockup,
    "more-pages": _cmd_more_pages,
    "ideas": _cmd_ideas,
    "delete": _cmd_delete,
    "export": _cmd_export,
}


# -------------------------------------------------
# Parser
# -------------------------------------------------

def _add_configuration_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--product-type", help="e.g. Coloring Book, Sticker Pack")
    parser.add_argument("--theme", help="Theme or niche")
    parser.add_argument("--audience", help="Target audience")
    parser.add_argument("--style", help="Art style")
    parser.add_argument(
        "--size",
        default=PublicationSize.PORTRAIT.value,
        choices=[s.value for s in PublicationSize],
        help="Publication size",
    )
    parser.add_argument("--dimensions", help="Dimensions when --size is Custom")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagecraft", description="Plan and illustrate printable creative products.")
    parser.add_argument("--state-dir", help="Directory holding saved project snapshots")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("plan", help="Generate a project plan from a configuration")
    _add_configuration_args(p)

    p = sub.add_parser("quickstart", help="Start a blank project")
    _add_configuration_args(p)

    sub.add_parser("list", help="List saved projects, newest first")

    p = sub.add_parser("show", help="Show a saved project")
    p.add_argument("project_id")

    p = sub.add_parser("generate", help="Generate page images")
    p.add_argument("project_id")
    p.add_argument("--page", action="append", help="Page id (repeatable; default: every page)")
    p.add_argument("--force", action="store_true", help="Regenerate pages that already have an image")

    p = sub.add_parser("mockup", help="Place a finished design into a scene")
    p.add_argument("project_id")
    p.add_argument("source_id", help="Id of the finished asset to place")
    p.add_argument("--scene", required=True, help="Scene description")

    p = sub.add_parser("more-pages", help="Ask for additional page concepts")
    p.add_argument("project_id")
    p.add_argument("--count", type=int, default=3)

    p = sub.add_parser("ideas", help="Generate prompt ideas")
    p.add_argument("project_id")
    p.add_argument("--kind", default="page", choices=["cover", "page", "sticker"])
    p.add_argument("--style", default=RenderMode.COLOR.value, choices=[RenderMode.COLOR.value, RenderMode.LINE_ART.value])
    p.add_argument("--instructions", default="")
    p.add_argument("--count", type=int, default=5)
    p.add_argument("--promote", type=int, action="append", help="Index of an idea to add as a page (repeatable)")
    p.add_argument("--out", help="Write the ideas to this text file")

    p = sub.add_parser("delete", help="Delete a saved project")
    p.add_argument("project_id")

    p = sub.add_parser("export", help="Export a project")
    p.add_argument("project_id")
    p.add_argument("--kind", default="kit", choices=["kit", "mockups", "prompts"])
    p.add_argument("--out", help="Output file")

    return parser


async def _run(args: argparse.Namespace) -> int:
    orch = build_orchestrator(args.state_dir)
    try:
        return await _COMMANDS[args.command](orch, args)
    finally:
        await orch.drain()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return asyncio.run(_run(args))
    except (PagecraftError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
