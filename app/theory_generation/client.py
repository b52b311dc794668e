"""Generation client: prompt in, structured section document out.

No business logic. Builds the section prompt, performs one chat call
off the event loop, and recovers the JSON document from the reply.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import requests

from app.theory_generation.errors import GenerationServiceError, ParseError
from app.theory_generation.models import (
    ContentDocument,
    GenerationUnit,
    SectionKind,
)
from app.theory_generation.parsing import extract_json_document
from app.theory_generation.prompts.sections import SYSTEM_PROMPT

if TYPE_CHECKING:
    from app.llm_clients import LLMResponse
    from app.theory_generation.progress import CostAccumulator
    from app.theory_generation.prompts import PromptBuilder

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    """Blocking chat transport (see ``app.llm_clients``)."""

    def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = ...,
        system_prompt: str | None = ...,
        response_mime_type: str | None = ...,
    ) -> LLMResponse: ...


class SectionSource(Protocol):
    """Anything that can produce one section document for a unit."""

    async def produce(
        self, unit: GenerationUnit, section_kind: SectionKind,
    ) -> ContentDocument: ...


class GenerationClient:
    """Calls the chat model for one section and parses its reply."""

    def __init__(
        self,
        chat_client: ChatClient,
        prompt_builder: PromptBuilder,
        *,
        temperature: float = 0.7,
        cost_accumulator: CostAccumulator | None = None,
    ) -> None:
        self._chat = chat_client
        self._prompts = prompt_builder
        self._temperature = temperature
        self._costs = cost_accumulator

    async def produce_text(
        self, unit: GenerationUnit, section_kind: SectionKind,
    ) -> str:
        """Send the section prompt and return the raw reply text.

        Raises:
            ConfigurationError: Unknown dimension, level or section kind.
            GenerationServiceError: Transport failure or timeout.
        """
        prompt = self._prompts.build(unit, section_kind)
        try:
            response = await asyncio.to_thread(
                self._chat.generate_text,
                prompt,
                temperature=self._temperature,
                system_prompt=SYSTEM_PROMPT,
                response_mime_type="application/json",
            )
        except requests.RequestException as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise GenerationServiceError(msg) from exc

        if self._costs is not None:
            self._costs.add(response.usage)
        logger.debug(
            "%s/%s: reply %d chars (%d in / %d out tokens)",
            unit.key, section_kind.value, len(response.text),
            response.usage.input_tokens, response.usage.output_tokens,
        )
        return response.text

    async def produce(
        self, unit: GenerationUnit, section_kind: SectionKind,
    ) -> ContentDocument:
        """Produce and parse one section document.

        Raises:
            ParseError: Reply is not a recoverable JSON object.
            GenerationServiceError: Transport failure or timeout.
        """
        text = await self.produce_text(unit, section_kind)
        document = extract_json_document(text)
        if not isinstance(document, dict):
            msg = f"Expected a JSON object, got {type(document).__name__}"
            raise ParseError(msg)
        return document
