from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple


DEFAULT_TEXT_MODEL = os.getenv("PAGECRAFT_TEXT_MODEL", "gemini-3-flash-preview")
DEFAULT_IMAGE_MODEL = os.getenv("PAGECRAFT_IMAGE_MODEL", "gemini-2.5-flash-image")
DEFAULT_STATE_DIR = os.getenv("PAGECRAFT_STATE_DIR", "state/projects")

# Checked in order; the first non-empty value wins.
CREDENTIAL_ENV_VARS: Tuple[str, ...] = ("GEMINI_API_KEY", "API_KEY")


@dataclass
class Settings:
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    state_dir: Path = field(default_factory=lambda: Path(DEFAULT_STATE_DIR))
    credential_env_vars: Tuple[str, ...] = CREDENTIAL_ENV_VARS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            text_model=env.get("PAGECRAFT_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
            image_model=env.get("PAGECRAFT_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
            state_dir=Path(env.get("PAGECRAFT_STATE_DIR") or DEFAULT_STATE_DIR),
        )


def resolve_credential(
    names: Tuple[str, ...] = CREDENTIAL_ENV_VARS,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the first non-empty credential found in the environment, read at call time."""
    env = os.environ if environ is None else environ
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None


__all__ = [
    "Settings",
    "resolve_credential",
    "CREDENTIAL_ENV_VARS",
    "DEFAULT_TEXT_MODEL",
    "DEFAULT_IMAGE_MODEL",
    "DEFAULT_STATE_DIR",
]
