"""ContextOrchestrator: runs the extraction stages and assembles the bundle.

State machine:

    IDLE -> PARSING -> ANALYZING -> SYNTHESIZING -> VALIDATING -> DONE

with FAILED reachable from any state before VALIDATING.

PARSING builds the immutable NodeRegistry. ANALYZING runs the four
extractors (style, components, layout, prototype) concurrently against
that registry, each in a worker thread under the per-stage timeout.
SYNTHESIZING waits for all four, then runs semantic inference, the
health report and the contrast report. VALIDATING checks the assembled
bundle.

A stage that times out or raises resolves to its empty default and
leaves a TimeoutWarning / StageFailedWarning; the pipeline carries on.
Only malformed input or cancellation end a run early, and neither
raises out of ``extract()``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import settings
from .analysis.accessibility import AccessibilityAnalyzer
from .analysis.health import DesignHealthAnalyzer
from .analysis.semantic import SemanticAnalyzer
from .analysis.validator import Validator
from .cache import ContextCache
from .cancellation import CancellationToken
from .errors import ExtractionCancelled, MalformedInputError, WarningImpact, WarningKind
from .extractors.components import ComponentMapper, ComponentMapResult
from .extractors.layout import LayoutAnalyzer
from .extractors.prototype import PrototypeMapper, PrototypeResult
from .extractors.style import StyleExtractor, StyleResult
from .hashing import compute_input_hash
from .logging_config import get_pipeline_logger
from .models import (
    AccessibilityReport,
    BundleMetadata,
    ContextBundle,
    DesignSystemUsage,
    HealthReport,
    Note,
    PipelineWarning,
    ValidationResult,
)
from .nodes.parser import NodeParser, ParseResult
from .nodes.registry import NodeRegistry

logger = get_pipeline_logger()

# Fixed stage order for warnings and notes, independent of finish order
ANALYSIS_STAGES = ("style", "components", "layout", "prototype")
STAGE_ORDER = ("parse",) + ANALYSIS_STAGES + ("semantic", "health", "accessibility")


class PipelineState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


class ExtractionConfig(BaseModel):
    """Per-orchestrator tunables; defaults come from settings."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    stage_timeout: float = Field(default_factory=lambda: settings.STAGE_TIMEOUT, gt=0)
    layout_tolerance: float = Field(default_factory=lambda: settings.LAYOUT_TOLERANCE, ge=0)
    max_component_depth: int = Field(default_factory=lambda: settings.MAX_COMPONENT_DEPTH, ge=1)
    validation_level: Literal["minimal", "standard", "strict"] = Field(
        default_factory=lambda: settings.VALIDATION_LEVEL,
    )


@dataclass
class ExtractionResult:
    bundle: ContextBundle
    state: PipelineState
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    state_history: List[PipelineState] = field(default_factory=list)
    from_cache: bool = False


@dataclass
class _Run:
    """Mutable bookkeeping for one extract() call."""
    input_hash: str
    token: CancellationToken
    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    registry: Optional[NodeRegistry] = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    # stage name -> warnings raised by the orchestrator for it (timeouts, failures)
    stage_warnings: Dict[str, List[PipelineWarning]] = field(default_factory=dict)

    def transition(self, state: PipelineState) -> None:
        logger.info("Pipeline %s: %s -> %s", self.input_hash[:19], self.state.value, state.value)
        self.state = state
        self.history.append(state)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContextOrchestrator:
    """Coordinates the extraction stages for one configuration.

    Stage implementations are injectable so callers (and tests) can swap
    in slow or failing collaborators.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        cache: Optional[ContextCache] = None,
        parser: Optional[NodeParser] = None,
        style_extractor: Optional[StyleExtractor] = None,
        component_mapper: Optional[ComponentMapper] = None,
        layout_analyzer: Optional[LayoutAnalyzer] = None,
        prototype_mapper: Optional[PrototypeMapper] = None,
        semantic_analyzer: Optional[SemanticAnalyzer] = None,
        health_analyzer: Optional[DesignHealthAnalyzer] = None,
        accessibility_analyzer: Optional[AccessibilityAnalyzer] = None,
        validator: Optional[Validator] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config or ExtractionConfig()
        self.cache = cache
        self.parser = parser or NodeParser()
        self.style_extractor = style_extractor or StyleExtractor()
        self.component_mapper = component_mapper or ComponentMapper(
            max_depth=self.config.max_component_depth,
        )
        self.layout_analyzer = layout_analyzer or LayoutAnalyzer(tolerance=self.config.layout_tolerance)
        self.prototype_mapper = prototype_mapper or PrototypeMapper()
        self.semantic_analyzer = semantic_analyzer or SemanticAnalyzer()
        self.health_analyzer = health_analyzer or DesignHealthAnalyzer()
        self.accessibility_analyzer = accessibility_analyzer or AccessibilityAnalyzer()
        self.validator = validator or Validator(level=self.config.validation_level)
        self.clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(
        self,
        raw_tree: Any,
        raw_interactions: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExtractionResult:
        run = _Run(
            input_hash=compute_input_hash(raw_tree, raw_interactions),
            token=cancel_token or CancellationToken(),
        )

        if self.cache is not None:
            cached = self.cache.get(run.input_hash)
            if cached is not None:
                run.transition(PipelineState.DONE)
                return ExtractionResult(
                    bundle=cached,
                    state=PipelineState.DONE,
                    validation=cached.validation,
                    state_history=run.history,
                    from_cache=True,
                )

        start = time.monotonic()
        try:
            run.transition(PipelineState.PARSING)
            parsed: ParseResult = await self._until_cancelled(
                asyncio.to_thread(self.parser.parse, raw_tree), run.token,
            )
            run.registry = parsed.registry
            run.outputs["parse"] = parsed

            run.transition(PipelineState.ANALYZING)
            await self._until_cancelled(self._analyze(run, raw_interactions), run.token)

            run.transition(PipelineState.SYNTHESIZING)
            await self._until_cancelled(self._synthesize(run), run.token)
        except MalformedInputError as e:
            logger.error("Pipeline %s: malformed input: %s", run.input_hash[:19], e)
            run.transition(PipelineState.FAILED)
            return ExtractionResult(
                bundle=self._failed_bundle(run, str(e)),
                state=PipelineState.FAILED,
                error=str(e),
                state_history=run.history,
            )
        except ExtractionCancelled as e:
            reason = str(e) or run.token.reason
            logger.warning("Pipeline %s: cancelled during %s (%s)", run.input_hash[:19], run.state.value, reason)
            bundle = self._assemble(run, cancelled=True)
            run.transition(PipelineState.FAILED)
            return ExtractionResult(
                bundle=bundle,
                state=PipelineState.FAILED,
                error=f"Extraction cancelled: {reason}",
                state_history=run.history,
            )

        run.transition(PipelineState.VALIDATING)
        bundle = self._assemble(run, cancelled=False)
        validation = self.validator.validate(bundle)
        bundle = bundle.model_copy(update={
            "validation": validation,
            "warnings": bundle.warnings + validation.warnings,
        })
        run.transition(PipelineState.DONE)

        degraded = any(
            w.kind in (WarningKind.TIMEOUT, WarningKind.STAGE_FAILED) for w in bundle.warnings
        )
        if self.cache is not None and not degraded:
            self.cache.put(run.input_hash, bundle)

        logger.info(
            "Pipeline %s: done in %.3fs (%d nodes, %d tokens, %d warnings, valid=%s)",
            run.input_hash[:19], time.monotonic() - start,
            bundle.registry_summary.node_count, len(bundle.tokens),
            len(bundle.warnings), validation.valid,
        )
        return ExtractionResult(
            bundle=bundle,
            state=PipelineState.DONE,
            validation=validation,
            state_history=run.history,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _analyze(self, run: _Run, raw_interactions: Any) -> None:
        registry = run.registry
        stages = {
            "style": (lambda t: self.style_extractor.extract(registry, t), StyleResult()),
            "components": (lambda t: self.component_mapper.map(registry, t), ComponentMapResult()),
            "layout": (lambda t: self.layout_analyzer.analyze(registry, t), []),
            "prototype": (
                lambda t: self.prototype_mapper.map(registry, raw_interactions, t),
                PrototypeResult(),
            ),
        }
        await asyncio.gather(*[
            self._run_stage(run, name, func, default) for name, (func, default) in stages.items()
        ])

    async def _synthesize(self, run: _Run) -> None:
        registry = run.registry
        style: StyleResult = run.outputs["style"]
        components: ComponentMapResult = run.outputs["components"]
        layouts = run.outputs["layout"]

        await self._run_stage(
            run,
            "semantic",
            lambda t: self.semantic_analyzer.analyze(
                registry, style.tokens, components.relationships, layouts, t,
            ),
            [],
        )
        await self._run_stage(
            run,
            "health",
            lambda t: self.health_analyzer.analyze(style.tokens),
            HealthReport(),
        )
        await self._run_stage(
            run,
            "accessibility",
            lambda t: self.accessibility_analyzer.analyze(registry, style.tokens, t),
            AccessibilityReport(),
        )

    async def _run_stage(
        self,
        run: _Run,
        name: str,
        func: Callable[[CancellationToken], Any],
        default: Any,
    ) -> None:
        """Run one stage in a worker thread under the stage timeout.

        Stores the result (or ``default``) in ``run.outputs[name]``.
        ExtractionCancelled propagates; everything else degrades.
        """
        stage_token = run.token.child()
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(func, stage_token), timeout=self.config.stage_timeout,
            )
        except asyncio.TimeoutError:
            stage_token.cancel(f"{name} timed out")
            logger.warning(
                "Pipeline %s: stage %s timed out after %.2fs",
                run.input_hash[:19], name, self.config.stage_timeout,
            )
            run.stage_warnings.setdefault(name, []).append(PipelineWarning(
                kind=WarningKind.TIMEOUT,
                code="stage_timeout",
                message=f"Stage {name!r} exceeded {self.config.stage_timeout:g}s; using empty result",
                stage=name,
                impact=WarningImpact.HIGH,
            ))
            run.outputs[name] = default
            return
        except ExtractionCancelled:
            raise
        except Exception as e:
            if run.token.cancelled:
                raise ExtractionCancelled(run.token.reason) from e
            logger.error(
                "Pipeline %s: stage %s failed: %s: %s",
                run.input_hash[:19], name, type(e).__name__, e,
            )
            run.stage_warnings.setdefault(name, []).append(PipelineWarning(
                kind=WarningKind.STAGE_FAILED,
                code="stage_failed",
                message=f"Stage {name!r} failed ({type(e).__name__}: {e}); using empty result",
                stage=name,
                impact=WarningImpact.HIGH,
            ))
            run.outputs[name] = default
            return

        logger.info(
            "Pipeline %s: stage %s finished in %.3fs",
            run.input_hash[:19], name, time.monotonic() - started,
        )
        run.outputs[name] = result

    @staticmethod
    async def _until_cancelled(awaitable, token: CancellationToken):
        """Await ``awaitable`` unless the token fires first."""
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        raise ExtractionCancelled(token.reason)

    # ------------------------------------------------------------------
    # Bundle assembly
    # ------------------------------------------------------------------

    def _metadata(self, run: _Run) -> BundleMetadata:
        return BundleMetadata(
            extracted_at=self.clock().isoformat(),
            input_hash=run.input_hash,
            pipeline_version=settings.PIPELINE_VERSION,
        )

    def _assemble(self, run: _Run, cancelled: bool) -> ContextBundle:
        """Build the bundle from whatever stage outputs exist."""
        outputs = run.outputs
        style: Optional[StyleResult] = outputs.get("style")
        components: Optional[ComponentMapResult] = outputs.get("components")
        prototype: Optional[PrototypeResult] = outputs.get("prototype")
        parsed: Optional[ParseResult] = outputs.get("parse")

        stage_findings: Dict[str, List[PipelineWarning]] = {
            "parse": list(parsed.warnings) if parsed else [],
            "components": list(components.warnings) if components else [],
            "prototype": list(prototype.warnings) if prototype else [],
        }
        warnings: List[PipelineWarning] = []
        for name in STAGE_ORDER:
            warnings.extend(stage_findings.get(name, []))
            warnings.extend(run.stage_warnings.get(name, []))

        notes: List[Note] = list(prototype.notes) if prototype else []
        if cancelled:
            missing = [name for name in STAGE_ORDER if name not in outputs]
            if missing:
                notes.append(Note(
                    stage="orchestrator",
                    message="Cancelled before completion; missing stages: " + ", ".join(missing),
                ))

        extra: Dict[str, Any] = {}
        if run.registry is not None:
            extra["registry_summary"] = run.registry.summary()
        return ContextBundle(
            tokens=tuple(style.tokens) if style else (),
            components=tuple(components.relationships) if components else (),
            variant_groups=tuple(components.variant_groups) if components else (),
            component_usage=components.usage if components else DesignSystemUsage(),
            layouts=tuple(outputs.get("layout") or ()),
            flows=tuple(prototype.edges) if prototype else (),
            annotations=tuple(outputs.get("semantic") or ()),
            transparent_node_ids=tuple(style.none_markers) if style else (),
            warnings=tuple(warnings),
            notes=tuple(notes),
            health=outputs.get("health"),
            accessibility=outputs.get("accessibility"),
            cancelled=cancelled,
            metadata=self._metadata(run),
            **extra,
        )

    def _failed_bundle(self, run: _Run, message: str) -> ContextBundle:
        return ContextBundle(
            warnings=(PipelineWarning(
                kind=WarningKind.STRUCTURAL,
                code="malformed_input",
                message=message,
                stage="parse",
                impact=WarningImpact.HIGH,
            ),),
            metadata=self._metadata(run),
        )


def extract_context(
    raw_tree: Any,
    raw_interactions: Any = None,
    config: Optional[ExtractionConfig] = None,
    cache: Optional[ContextCache] = None,
) -> ExtractionResult:
    """Synchronous convenience wrapper around ContextOrchestrator.extract()."""
    orchestrator = ContextOrchestrator(config=config, cache=cache)
    return asyncio.run(orchestrator.extract(raw_tree, raw_interactions))
