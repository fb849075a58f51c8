from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Callable, Optional, Tuple

from google import genai
from google.genai import types

from .config import Settings, resolve_credential
from .errors import MissingCredentialError, NoImageReturnedError, ProviderError

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Data URL helpers
# -------------------------------------------------

def to_data_url(data: bytes | str, mime_type: Optional[str] = None) -> str:
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or 'image/png'};base64,{data}"


def split_data_url(url: str) -> Tuple[str, bytes]:
    """Return (mime_type, raw bytes) for a ``data:<mime>;base64,<data>`` URL."""
    header, sep, encoded = url.partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("Not a base64 data URL.")
    mime_type = header[len("data:"):].split(";")[0] or "image/png"
    try:
        return mime_type, base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Data URL payload is not valid base64.") from exc


# -------------------------------------------------
# Provider client
# -------------------------------------------------

class GenerativeProvider:
    """
    Thin gateway to the generative provider.

    Two request kinds: a structured text request (returns raw text, which may
    or may not honour the declared shape) and an image request (returns a
    data URL). Nothing else in the package knows about the SDK.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._client_factory = client_factory
        self._cached: Optional[Tuple[str, Any]] = None

    # -------------------------------------------------

    def ensure_credential(self) -> str:
        credential = resolve_credential(self.settings.credential_env_vars)
        if not credential:
            names = " or ".join(self.settings.credential_env_vars)
            raise MissingCredentialError(f"API key not found; set {names}.")
        return credential

    def _client(self) -> Any:
        """Reuse one SDK client per credential; a rotated key gets a fresh one."""
        credential = self.ensure_credential()
        if self._cached is not None and self._cached[0] == credential:
            return self._cached[1]
        factory = self._client_factory or genai.Client
        client = factory(api_key=credential)
        self._cached = (credential, client)
        return client

    # -------------------------------------------------

    async def request_structured_plan(self, task: str, response_schema: Any) -> str:
        client = self._client()
        logger.debug("Structured request (%s chars) to %s", len(task), self.settings.text_model)

        try:
            response = await client.aio.models.generate_content(
                model=self.settings.text_model,
                contents=task,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=response_schema,
                ),
            )
        except Exception as exc:
            raise ProviderError(f"Structured request failed: {exc}") from exc

        text = getattr(response, "text", None) or ""
        logger.debug("Structured response (%s chars): %s", len(text), text)
        return text

    async def request_image(
        self,
        prompt: str,
        aspect_ratio: str,
        reference: Optional[str] = None,
    ) -> str:
        client = self._client()

        contents: Any = prompt
        if reference:
            try:
                mime_type, data = split_data_url(reference)
            except ValueError as exc:
                raise ProviderError(f"Reference image is unusable: {exc}") from exc
            contents = [types.Part.from_bytes(data=data, mime_type=mime_type), prompt]

        logger.debug("Image request (%s) to %s: %s", aspect_ratio, self.settings.image_model, prompt)

        try:
            response = await client.aio.models.generate_content(
                model=self.settings.image_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                ),
            )
        except Exception as exc:
            raise ProviderError(f"Image request failed: {exc}") from exc

        url = self._extract_image(response)
        if url is None:
            raise NoImageReturnedError("No image data found in response.")
        return url

    # -------------------------------------------------

    @staticmethod
    def _extract_image(response: Any) -> Optional[str]:
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and getattr(inline, "data", None):
                    return to_data_url(inline.data, getattr(inline, "mime_type", None))
        return None


__all__ = ["GenerativeProvider", "to_data_url", "split_data_url"]
