from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from google import genai
from google.genai import types

from recipebox.services.errors import NetworkTimeoutError, ServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "gemini-2.5-flash"
DEFAULT_TIMEOUT_SECONDS = 60.0

Contents = Union[str, Sequence[Union[str, types.Part]]]


class GeminiConfigurationError(ServiceUnavailableError):
    pass


class GeminiPromptError(ServiceUnavailableError):
    pass


@dataclass(frozen=True)
class GeminiReply:
    text: str
    tokens_used: Optional[int] = None


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = DEFAULT_MODEL_NAME,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self._client: Optional[genai.Client] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.model_name)

    def _configure_api(self) -> genai.Client:
        if not self.api_key:
            raise GeminiConfigurationError("Gemini API key not configured")
        if not self.model_name:
            raise GeminiConfigurationError("Gemini model not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _load_system_prompt(self, file_path: Path) -> str:
        try:
            return file_path.read_text(encoding="utf-8")
        except FileNotFoundError as not_found_error:
            raise GeminiPromptError(f"Prompt file not found: {file_path}") from not_found_error
        except (OSError, IOError) as io_error:
            raise GeminiPromptError(f"Unable to read prompt file: {io_error}") from io_error

    @staticmethod
    def inline_part(data: bytes, mime_type: str) -> types.Part:
        # The SDK base64-encodes inline data on the wire
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    async def generate_content(
        self,
        contents: Contents,
        system_prompt_path: Path,
    ) -> GeminiReply:
        client = self._configure_api()
        system_instruction = self._load_system_prompt(system_prompt_path)

        request = client.aio.models.generate_content(
            model=self.model_name,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                response_mime_type="application/json",
                temperature=0.0,
            ),
        )
        try:
            response = await asyncio.wait_for(request, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as error:
            logger.warning("Gemini call timed out after %.0fs", self.timeout_seconds)
            raise NetworkTimeoutError(f"gemini:{self.model_name}", self.timeout_seconds) from error

        usage = getattr(response, "usage_metadata", None)
        tokens_used = getattr(usage, "total_token_count", None) if usage else None
        return GeminiReply(text=response.text or "", tokens_used=tokens_used)

    async def check_connection(self) -> bool:
        if not self.is_configured:
            return False

        client = self._configure_api()
        try:
            await asyncio.wait_for(
                client.aio.models.generate_content(model=self.model_name, contents="Test"),
                timeout=self.timeout_seconds,
            )
        except Exception as error:
            logger.warning("Gemini connection check failed: %s", error)
            return False
        return True
