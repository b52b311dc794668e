"""Bounded retry loop around section generation and validation.

Each call owns its own attempt counter. Parse failures, transport
failures and validation failures are all "this attempt did not produce
usable output" and share one retry budget with a fixed backoff.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from app.theory_generation.errors import (
    ContentValidationError,
    GenerationExhaustedError,
    TransientGenerationError,
)
from app.theory_generation.models import (
    ContentDocument,
    GenerationConfig,
    GenerationUnit,
    SectionKind,
    SectionTask,
)
from app.theory_generation.validators import ContentValidator

if TYPE_CHECKING:
    from app.theory_generation.client import SectionSource
    from app.utils.logging_config import RunEventLog

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class RetryingGenerator:
    """Generates one valid section document per call, or gives up.

    Flow per attempt:
    1. Produce a document from the generation client.
    2. Validate it (unless validation is disabled).
    3. On any transient failure, wait ``retry_delay_seconds`` and try
       again, up to ``max_retries`` attempts in total.
    """

    def __init__(
        self,
        source: SectionSource,
        config: GenerationConfig,
        *,
        validator: ContentValidator | None = None,
        events: RunEventLog | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._source = source
        self._config = config
        self._validator = validator or ContentValidator()
        self._events = events
        self._sleep = sleep

    async def generate(
        self, unit: GenerationUnit, section_kind: SectionKind,
    ) -> ContentDocument:
        """Return a validated document for one section of a unit.

        Raises:
            GenerationExhaustedError: All attempts failed. Carries the
                last attempt's error list.
            ConfigurationError: Prompt could not be built (not retried).
        """
        task = SectionTask(unit=unit, section_kind=section_kind)
        max_attempts = self._config.max_retries
        last_errors: list[str] = []

        for attempt in range(1, max_attempts + 1):
            try:
                document = await self._source.produce(unit, section_kind)
                self._check(section_kind, document)
            except ContentValidationError as exc:
                last_errors = list(exc.outcome.errors)
                self._emit_warning(
                    "validation failed",
                    task, attempt, max_attempts, errors=last_errors,
                )
            except TransientGenerationError as exc:
                last_errors = [str(exc)]
                self._emit_warning(
                    "generation attempt failed",
                    task, attempt, max_attempts, errors=last_errors,
                )
            else:
                if attempt > 1:
                    logger.info(
                        "%s succeeded on attempt %d/%d",
                        task.key, attempt, max_attempts,
                    )
                return document

            if attempt < max_attempts:
                await self._sleep(self._config.retry_delay_seconds)

        raise GenerationExhaustedError(
            unit, section_kind, max_attempts, last_errors,
        )

    def _check(self, section_kind: SectionKind, document: ContentDocument) -> None:
        if not self._config.validation_enabled:
            return
        outcome = self._validator.validate(section_kind, document)
        if not outcome.is_valid:
            raise ContentValidationError(outcome)
        logger.debug("%s stats: %s", section_kind.value, outcome.stats)
        if self._events is not None:
            self._events.debug(
                "section validated",
                section=section_kind.value,
                stats=outcome.stats,
            )

    def _emit_warning(
        self,
        message: str,
        task: SectionTask,
        attempt: int,
        max_attempts: int,
        *,
        errors: list[str],
    ) -> None:
        data = {
            "dimension": task.unit.dimension_id,
            "level": task.unit.level,
            "section": task.section_kind.value,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "errors": errors,
        }
        if self._events is not None:
            self._events.warning(message, **data)
        else:
            logger.warning(
                "%s: %s (attempt %d/%d): %s",
                task.key, message, attempt, max_attempts, "; ".join(errors),
            )
