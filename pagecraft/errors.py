from __future__ import annotations


class PagecraftError(RuntimeError):
    """Base class for every error raised by the generation pipeline."""


class MissingCredentialError(PagecraftError):
    """Raised before any network attempt when no provider credential is configured."""


class ProviderError(PagecraftError):
    """Raised when the provider call fails (network, auth, rate limit)."""


class NoImageReturnedError(ProviderError):
    """The provider answered, but the response carried no usable image."""


class ResponseParseError(PagecraftError):
    """The provider answered, but no parse stage produced the expected shape."""


class PersistenceWriteError(PagecraftError):
    """The durable snapshot could not be written or deleted."""


class PersistenceReadError(PagecraftError):
    """A stored snapshot is missing or unreadable."""


class ValidationGapError(PagecraftError, ValueError):
    """The user asked for work without supplying the required inputs."""


class SlotBusyError(PagecraftError):
    """A generation is already in flight for the requested slot."""

    def __init__(self, slot: str) -> None:
        super().__init__(f"Generation already in progress for slot '{slot}'.")
        self.slot = slot


class NoActiveProjectError(PagecraftError):
    """A project mutation was attempted while no project is open."""


class UnknownRecordError(PagecraftError, KeyError):
    """A page, asset or idea lookup did not match anything in the session."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown record"


__all__ = [
    "PagecraftError",
    "MissingCredentialError",
    "ProviderError",
    "NoImageReturnedError",
    "ResponseParseError",
    "PersistenceWriteError",
    "PersistenceReadError",
    "ValidationGapError",
    "SlotBusyError",
    "NoActiveProjectError",
    "UnknownRecordError",
]
