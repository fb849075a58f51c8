from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from .errors import SlotBusyError

logger = logging.getLogger(__name__)


PLAN_SLOT = "plan"
MOCKUP_SLOT = "mockup"
EXTRA_PAGES_SLOT = "extra_pages"
IDEAS_SLOT = "ideas"


def image_slot(page_id: str) -> str:
    return f"image:{page_id}"


def concept_slot(page_id: str) -> str:
    return f"concept:{page_id}"


class SlotPhase(str, Enum):
    PLACEHOLDER_INSERTED = "placeholder_inserted"
    AWAITING_PROVIDER = "awaiting_provider"
    FULFILLED = "fulfilled"
    ROLLED_BACK = "rolled_back"


class SlotRegistry:
    """
    Single-flight bookkeeping: one phase per occupied slot.

    A slot missing from the map is Idle. Claiming an occupied slot raises
    SlotBusyError; the holder must release() once the call settles.
    """

    def __init__(self) -> None:
        self._phases: Dict[str, SlotPhase] = {}

    def claim(self, slot: str) -> None:
        if slot in self._phases:
            raise SlotBusyError(slot)
        self._phases[slot] = SlotPhase.PLACEHOLDER_INSERTED

    def advance(self, slot: str, phase: SlotPhase) -> None:
        if slot not in self._phases:
            raise KeyError(f"Slot '{slot}' is not claimed.")
        self._phases[slot] = phase
        logger.debug("Slot %s -> %s", slot, phase.value)

    def release(self, slot: str) -> None:
        self._phases.pop(slot, None)

    def phase(self, slot: str) -> Optional[SlotPhase]:
        return self._phases.get(slot)

    def is_busy(self, slot: str) -> bool:
        return slot in self._phases

    def busy_slots(self) -> Dict[str, SlotPhase]:
        return dict(self._phases)


__all__ = [
    "SlotRegistry",
    "SlotPhase",
    "PLAN_SLOT",
    "MOCKUP_SLOT",
    "EXTRA_PAGES_SLOT",
    "IDEAS_SLOT",
    "image_slot",
    "concept_slot",
]
