# tests/conftest.py
# ============================================================
# Shared pytest fixtures for all tests under tests/:
#   - provider: scripted stand-in for the generative provider
#     (queued text/image replies, injected failures, optional gate)
#   - snapshots: ProjectSnapshotStore rooted in tmp_path
#   - orchestrator: GenerationOrchestrator wired to both
# ============================================================

from __future__ import annotations

import asyncio
import base64
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


# ---------- Ensure project root is importable ----------
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pagecraft.errors import MissingCredentialError  # noqa: E402
from pagecraft.orchestrator import GenerationOrchestrator  # noqa: E402
from pagecraft.persistence import ProjectSnapshotStore  # noqa: E402


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
PNG_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


def page_dict(name: str, prompt: str, *, cover: bool = False) -> Dict[str, Any]:
    return {"name": name, "description": f"About {name}", "imagePrompt": prompt, "isCover": cover}


def plan_reply(page_count: int = 6, *, fenced: bool = True) -> str:
    pages = [page_dict("Cover", "a whale under the moon", cover=True)]
    pages += [page_dict(f"Page {i}", f"ocean scene number {i}") for i in range(1, page_count)]
    body = json.dumps(
        {
            "title": "Ocean Friends",
            "concept": "Friendly sea creatures for kids",
            "palette": ["#0055aa", "#ffffff"],
            "pages": pages,
            "monetizationStrategies": ["Sell on marketplaces", "Bundle with stickers"],
        }
    )
    return f"Here is your plan:\n```json\n{body}\n```" if fenced else body


# ---------- Scripted provider ----------
class FakeProvider:
    """
    Replies are consumed in order; an Exception instance in a queue is raised
    instead of returned. When `gate` is set, every call waits on it first.
    """

    def __init__(self) -> None:
        self.credential: Optional[str] = "test-key"
        self.text_replies: List[Any] = []
        self.image_replies: List[Any] = []
        self.calls: List[Tuple[Any, ...]] = []
        self.gate: Optional[asyncio.Event] = None

    def ensure_credential(self) -> str:
        if not self.credential:
            raise MissingCredentialError("API key not found; set GEMINI_API_KEY or API_KEY.")
        return self.credential

    async def request_structured_plan(self, task: str, response_schema: Any) -> str:
        self.calls.append(("text", task, response_schema))
        return await self._reply(self.text_replies)

    async def request_image(self, prompt: str, aspect_ratio: str, reference: Optional[str] = None) -> str:
        self.calls.append(("image", prompt, aspect_ratio, reference))
        return await self._reply(self.image_replies, default=PNG_URL)

    async def _reply(self, queue: List[Any], default: Any = None) -> Any:
        if self.gate is not None:
            await self.gate.wait()
        item = queue.pop(0) if queue else default
        if isinstance(item, Exception):
            raise item
        if item is None:
            raise AssertionError("FakeProvider ran out of scripted replies")
        return item


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "projects"


@pytest.fixture
def snapshots(state_dir: Path) -> ProjectSnapshotStore:
    return ProjectSnapshotStore(state_dir)


@pytest.fixture
def orchestrator(provider: FakeProvider, snapshots: ProjectSnapshotStore) -> GenerationOrchestrator:
    return GenerationOrchestrator(provider, snapshots)
