"""Theory content batch orchestrator.

Enumerates (dimension x level) units, generates the three sections of a
unit concurrently, persists the unit only once all three are valid, and
keeps going after any single unit fails. Units run strictly one after
another with a fixed pacing delay between them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from app.theory_generation.client import GenerationClient
from app.theory_generation.errors import (
    ConfigurationError,
    DuplicateRecordError,
    GenerationExhaustedError,
    PersistenceError,
    UnitGenerationError,
)
from app.theory_generation.generator import RetryingGenerator, Sleeper
from app.theory_generation.models import (
    DEFAULT_LEVELS,
    BatchRunResult,
    GenerationConfig,
    GenerationUnit,
    SectionDocuments,
    SectionKind,
    UnitOutcome,
)
from app.theory_generation.persistence import ContentStore, PersistenceGateway
from app.theory_generation.progress import (
    CostAccumulator,
    ProgressTracker,
    report_progress,
)
from app.theory_generation.prompts import PromptBuilder
from app.utils.logging_config import RunEventLog

if TYPE_CHECKING:
    from app.theory_generation.client import ChatClient
    from app.theory_generation.dimensions import DimensionCatalog

logger = logging.getLogger(__name__)


def plan_units(
    catalog: DimensionCatalog,
    target_dimensions: Iterable[str] | None = None,
    target_levels: Iterable[int] | None = None,
) -> list[GenerationUnit]:
    """Enumerate the requested units in a reproducible order.

    Configured dimensions come in declaration order, then any unknown
    requested ids sorted. Levels ascend. Units that are not in the
    catalog are moved after all configured units so that they end up
    as configuration errors at the tail of the run.
    """
    configured = catalog.dimension_ids()
    requested = list(dict.fromkeys(target_dimensions or []))
    if requested:
        known = [d for d in configured if d in requested]
        unknown = sorted(d for d in requested if d not in configured)
        dimensions = known + unknown
    else:
        dimensions = configured
    levels = sorted(set(target_levels or DEFAULT_LEVELS))

    units = [GenerationUnit(d, lvl) for d in dimensions for lvl in levels]
    valid = [u for u in units if catalog.has_unit(u)]
    invalid = [u for u in units if not catalog.has_unit(u)]
    return valid + invalid


class TheoryContentPipeline:
    """Runs a batch of units and aggregates their outcomes.

    Collaborators are injected so tests can swap the generator, the
    storage and the clock:
    - generator: produces one validated document per section
    - gateway: existence check, snapshot and insert
    - events: per-run structured event sink
    """

    def __init__(
        self,
        generator: RetryingGenerator,
        gateway: PersistenceGateway,
        catalog: DimensionCatalog,
        config: GenerationConfig,
        *,
        events: RunEventLog | None = None,
        cost_accumulator: CostAccumulator | None = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        emit_markers: bool = True,
    ) -> None:
        self._generator = generator
        self._gateway = gateway
        self._catalog = catalog
        self._config = config
        self._events = events or RunEventLog()
        self._costs = cost_accumulator
        self._sleep = sleep
        self._clock = clock
        self._emit_markers = emit_markers

    @property
    def events(self) -> RunEventLog:
        return self._events

    async def run(
        self,
        target_dimensions: Iterable[str] | None = None,
        target_levels: Iterable[int] | None = None,
        skip_existing: bool = True,
    ) -> BatchRunResult:
        """Process every requested unit and return the run summary.

        Args:
            target_dimensions: Dimension ids; empty or None means all.
            target_levels: Levels; empty or None means 1-5.
            skip_existing: Skip units that already have a published record.

        Returns:
            Counts per outcome, failed units, and a census of stored content.
        """
        units = plan_units(self._catalog, target_dimensions, target_levels)
        result = BatchRunResult(total_tasks=len(units))
        tracker = ProgressTracker(len(units), clock=self._clock)

        self._events.info(
            "generation run started",
            dimensions=sorted({u.dimension_id for u in units}),
            levels=sorted({u.level for u in units}),
            total_tasks=len(units),
            skip_existing=skip_existing,
            max_retries=self._config.max_retries,
        )

        for index, unit in enumerate(units):
            outcome, reason = await self._process_unit(unit, skip_existing, result)
            result.record(outcome)
            if outcome is UnitOutcome.ERRORED:
                result.failed_units[unit.key] = reason or "unknown error"

            snapshot = tracker.on_unit_result(outcome)
            self._events.info("progress", **snapshot.as_dict())
            if self._emit_markers:
                report_progress(snapshot.completed, snapshot.total)

            if index < len(units) - 1:
                await self._sleep(self._config.pacing_delay_seconds)

        timing = tracker.complete()
        result.elapsed_seconds = timing["total_ms"] / 1000
        if self._costs is not None:
            result.estimated_cost_usd = self._costs.total_cost_usd

        try:
            result.census = await self._gateway.census()
        except PersistenceError as exc:
            logger.warning("Census unavailable: %s", exc)

        self._events.info(
            "generation run completed",
            **result.summary(),
            average_ms=timing["average_ms"],
        )
        return result

    # ------------------------------------------------------------------
    # Per-unit processing
    # ------------------------------------------------------------------

    async def _process_unit(
        self,
        unit: GenerationUnit,
        skip_existing: bool,
        result: BatchRunResult,
    ) -> tuple[UnitOutcome, str | None]:
        """Drive one unit to a terminal outcome. Never raises."""
        data = {"dimension": unit.dimension_id, "level": unit.level}
        try:
            self._catalog.get_level(unit.dimension_id, unit.level)

            if skip_existing and await self._gateway.exists(unit):
                self._events.info("unit skipped: already published", **data)
                return UnitOutcome.SKIPPED, None

            self._events.info("unit started", **data)
            documents = await self._generate_sections(unit)
            record = await self._gateway.save(unit, documents)

        except DuplicateRecordError as exc:
            result.persistence_conflicts += 1
            self._events.warning("persistence conflict", **data, error=str(exc))
            return UnitOutcome.SKIPPED, None
        except UnitGenerationError as exc:
            self._events.error(
                "unit failed",
                **data,
                sections=[f.section_kind.value for f in exc.failures],
                errors={f.section_kind.value: f.errors for f in exc.failures},
            )
            return UnitOutcome.ERRORED, str(exc)
        except (ConfigurationError, PersistenceError) as exc:
            self._events.error(
                "unit failed", **data, error_type=type(exc).__name__, error=str(exc),
            )
            return UnitOutcome.ERRORED, str(exc)
        except Exception as exc:
            logger.exception("Unexpected failure on %s", unit.key)
            self._events.error(
                "unit failed", **data, error_type=type(exc).__name__, error=str(exc),
            )
            return UnitOutcome.ERRORED, f"{type(exc).__name__}: {exc}"

        self._events.info(
            "unit completed",
            **data,
            record_id=record.id,
            estimated_time=record.estimated_time,
            keywords=len(record.keywords),
        )
        return UnitOutcome.COMPLETED, None

    async def _generate_sections(self, unit: GenerationUnit) -> SectionDocuments:
        """Fan out the three sections and join before returning.

        Every section is awaited until it settles, so no call of this unit
        is still in flight once the unit has an outcome.

        Raises:
            UnitGenerationError: A section exhausted its retries.
            ConfigurationError: A prompt could not be built.
        """
        kinds = list(SectionKind)
        results = await asyncio.gather(
            *(self._generator.generate(unit, kind) for kind in kinds),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        for exc in failures:
            if isinstance(exc, ConfigurationError):
                raise exc
        for exc in failures:
            if not isinstance(exc, GenerationExhaustedError):
                raise exc
        if failures:
            raise UnitGenerationError(unit, failures)

        return SectionDocuments.from_mapping(dict(zip(kinds, results)))


def build_pipeline(
    chat_client: ChatClient,
    store: ContentStore,
    catalog: DimensionCatalog,
    config: GenerationConfig,
    *,
    events: RunEventLog | None = None,
    cost_accumulator: CostAccumulator | None = None,
) -> TheoryContentPipeline:
    """Wire the default collaborators around a chat client and a store."""
    events = events or RunEventLog()
    source = GenerationClient(
        chat_client,
        PromptBuilder(catalog),
        temperature=config.temperature,
        cost_accumulator=cost_accumulator,
    )
    generator = RetryingGenerator(source, config, events=events)
    gateway = PersistenceGateway(store, catalog, config, events=events)
    return TheoryContentPipeline(
        generator,
        gateway,
        catalog,
        config,
        events=events,
        cost_accumulator=cost_accumulator,
    )
