"""Plan, illustrate and export printable creative products with a generative provider."""

from .orchestrator import GenerationOrchestrator, GenerationResult
from .persistence import ProjectSnapshotStore
from .provider import GenerativeProvider
from .store import ProjectStore

__all__ = ["GenerationOrchestrator", "GenerationResult", "ProjectSnapshotStore", "GenerativeProvider", "ProjectStore"]
