"""Tests for orchestrator.py: state machine, degradation, cancellation, caching."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from design_context import (
    CancellationToken,
    ContextCache,
    ContextOrchestrator,
    ExtractionConfig,
    PipelineState,
    WarningKind,
    extract_context,
)
from design_context.cancellation import checkpoint
from design_context.extractors.layout import LayoutAnalyzer
from design_context.extractors.prototype import PrototypeMapper


FULL_RUN = [
    PipelineState.IDLE,
    PipelineState.PARSING,
    PipelineState.ANALYZING,
    PipelineState.SYNTHESIZING,
    PipelineState.VALIDATING,
    PipelineState.DONE,
]


def _fixed_clock():
    return datetime(2026, 1, 1, tzinfo=timezone.utc)


class SlowLayoutAnalyzer(LayoutAnalyzer):
    """Blocks until its stage token fires (bounded so a broken test can't hang)."""

    def analyze(self, registry, cancel_token=None):
        for _ in range(500):
            if cancel_token.cancelled:
                break
            time.sleep(0.01)
        checkpoint(cancel_token)
        return []


class BrokenPrototypeMapper(PrototypeMapper):
    def map(self, registry, raw_interactions=None, cancel_token=None):
        raise RuntimeError("boom")


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestExtract:
    @pytest.mark.asyncio
    async def test_empty_tree_is_valid_without_warnings(self):
        result = await ContextOrchestrator().extract([])

        assert result.state == PipelineState.DONE
        assert result.state_history == FULL_RUN
        assert result.bundle.valid
        assert result.bundle.warnings == ()
        assert result.bundle.tokens == ()
        assert result.bundle.health.overall_score is None
        assert [n.stage for n in result.bundle.notes] == ["prototype"]

    @pytest.mark.asyncio
    async def test_screen_file_bundle(self, screen_file):
        result = await ContextOrchestrator(config=ExtractionConfig(validation_level="strict")).extract(screen_file)
        bundle = result.bundle

        assert result.state == PipelineState.DONE
        assert result.validation.valid
        assert bundle.warnings == ()
        assert bundle.registry_summary.node_count == 18
        assert len(bundle.annotations) == 18
        assert [(f.source_node_id, f.target_node_id) for f in bundle.flows] == [("1:4", "2:1")]
        assert [c.instance_id for c in bundle.components] == ["1:4"]
        assert bundle.health.grade == "C+"
        assert bundle.component_usage.unused_master_ids == ("10:3",)
        assert bundle.accessibility.text_violations == 3

    @pytest.mark.asyncio
    async def test_every_reference_resolves(self, screen_file):
        bundle = (await ContextOrchestrator().extract(screen_file)).bundle
        known = bundle.registry_summary.node_ids()

        referenced = set()
        for token in bundle.tokens:
            referenced.update(token.reference_node_ids)
        for layout in bundle.layouts:
            referenced.add(layout.container_id)
            referenced.update(layout.participant_node_ids)
        for annotation in bundle.annotations:
            referenced.add(annotation.node_id)
            assert 0.0 <= annotation.confidence <= 1.0
        assert referenced <= known

    @pytest.mark.asyncio
    async def test_output_is_deterministic(self, screen_file):
        first = await ContextOrchestrator(clock=_fixed_clock).extract(screen_file)
        second = await ContextOrchestrator(clock=_fixed_clock).extract(screen_file)
        third = await ContextOrchestrator().extract(screen_file)

        assert first.bundle.to_json() == second.bundle.to_json()
        assert first.bundle.content_fingerprint() == third.bundle.content_fingerprint()

    @pytest.mark.asyncio
    async def test_wire_format_uses_camel_case(self, screen_file):
        data = (await ContextOrchestrator().extract(screen_file)).bundle.to_dict()

        assert "registrySummary" in data
        assert "transparentNodeIds" in data
        assert data["componentUsage"]["usedMasterCount"] == 1
        assert "textChecks" in data["accessibility"]
        assert data["metadata"]["inputHash"].startswith("sha256:")
        assert data["tokens"][0]["usageCount"] >= 1

    @pytest.mark.asyncio
    async def test_warnings_grouped_by_stage(self):
        tree = [
            {"id": "a", "type": "HOLOGRAM", "name": "A",
             "absoluteBoundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
             "reactions": [{"trigger": {"type": "ON_CLICK"}, "action": {"destinationId": "ghost"}}]},
        ]
        bundle = (await ContextOrchestrator().extract(tree)).bundle
        assert [(w.stage, w.code) for w in bundle.warnings] == [
            ("parse", "unknown_type"),
            ("prototype", "dangling_flow_target"),
        ]

    @pytest.mark.asyncio
    async def test_raw_interactions_feed_flows(self, screen_file):
        interactions = {"interactions": [{"source": "2:1", "target": "1:1", "trigger": "ON_CLICK"}]}
        bundle = (await ContextOrchestrator().extract(screen_file, interactions)).bundle
        assert ("2:1", "1:1") in [(f.source_node_id, f.target_node_id) for f in bundle.flows]


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------


class TestDegradation:
    @pytest.mark.asyncio
    async def test_slow_stage_times_out(self, screen_file):
        cache = ContextCache()
        orchestrator = ContextOrchestrator(
            config=ExtractionConfig(stage_timeout=0.1),
            layout_analyzer=SlowLayoutAnalyzer(),
            cache=cache,
        )
        result = await orchestrator.extract(screen_file)

        assert result.state == PipelineState.DONE
        assert result.bundle.layouts == ()
        timeouts = result.bundle.warnings_of_kind(WarningKind.TIMEOUT)
        assert [(w.stage, w.code) for w in timeouts] == [("layout", "stage_timeout")]
        assert result.bundle.tokens
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failing_stage_degrades(self, screen_file):
        result = await ContextOrchestrator(prototype_mapper=BrokenPrototypeMapper()).extract(screen_file)

        assert result.state == PipelineState.DONE
        assert result.bundle.flows == ()
        failures = result.bundle.warnings_of_kind(WarningKind.STAGE_FAILED)
        assert len(failures) == 1
        assert failures[0].stage == "prototype"
        assert "boom" in failures[0].message
        assert result.bundle.valid

    @pytest.mark.asyncio
    async def test_unknown_type_still_gives_valid_bundle(self):
        tree = {
            "id": "root", "type": "FRAME", "name": "Root",
            "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 100},
            "children": [{
                "id": "odd", "type": "HOLOGRAM", "name": "Odd",
                "absoluteBoundingBox": {"x": 10, "y": 10, "width": 20, "height": 20},
            }],
        }
        result = await ContextOrchestrator().extract(tree)
        bundle = result.bundle

        assert result.state == PipelineState.DONE
        assert bundle.valid
        odd = [n for n in bundle.registry_summary.nodes if n.id == "odd"]
        assert [n.type for n in odd] == ["UNKNOWN"]
        assert len(bundle.warnings) == 1
        assert bundle.warnings[0].kind == WarningKind.STRUCTURAL
        assert (bundle.warnings[0].code, bundle.warnings[0].node_ids) == ("unknown_type", ("odd",))

    @pytest.mark.asyncio
    async def test_oversized_number_does_not_escape(self):
        tree = [{
            "id": "a", "type": "RECTANGLE", "name": "A",
            "absoluteBoundingBox": {"x": 10 ** 400, "y": 0, "width": 10, "height": 10},
        }]
        result = await ContextOrchestrator().extract(tree)

        assert result.state == PipelineState.DONE
        assert result.bundle.valid
        assert [w.code for w in result.bundle.warnings] == ["missing_bounds"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not a tree", 7, None])
    async def test_malformed_input(self, raw):
        result = await ContextOrchestrator().extract(raw)

        assert result.state == PipelineState.FAILED
        assert result.state_history == [PipelineState.IDLE, PipelineState.PARSING, PipelineState.FAILED]
        assert result.error
        assert [w.code for w in result.bundle.warnings] == ["malformed_input"]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_returns_partial_bundle(self, screen_file):
        token = CancellationToken()
        orchestrator = ContextOrchestrator(
            config=ExtractionConfig(stage_timeout=10),
            layout_analyzer=SlowLayoutAnalyzer(),
        )
        asyncio.get_running_loop().call_later(0.1, token.cancel, "user abort")
        result = await orchestrator.extract(screen_file, cancel_token=token)

        assert result.state == PipelineState.FAILED
        assert result.state_history[-2:] == [PipelineState.ANALYZING, PipelineState.FAILED]
        assert result.error == "Extraction cancelled: user abort"
        assert result.bundle.cancelled
        assert result.bundle.layouts == ()
        assert result.bundle.annotations == ()
        assert result.bundle.registry_summary.node_count == 18
        assert any("layout" in n.message for n in result.bundle.notes if n.stage == "orchestrator")

    @pytest.mark.asyncio
    async def test_cancelled_bundle_not_cached(self, screen_file):
        cache = ContextCache()
        token = CancellationToken()
        orchestrator = ContextOrchestrator(layout_analyzer=SlowLayoutAnalyzer(), cache=cache)
        asyncio.get_running_loop().call_later(0.1, token.cancel)
        await orchestrator.extract(screen_file, cancel_token=token)
        assert len(cache) == 0

    def test_child_token_follows_parent(self):
        parent = CancellationToken()
        child = parent.child()
        parent.cancel("stop")
        assert child.cancelled
        assert child.reason == "stop"

        late = parent.child()
        assert late.cancelled


# ---------------------------------------------------------------------------
# Cache and configuration
# ---------------------------------------------------------------------------


class TestCacheAndConfig:
    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, screen_file):
        cache = ContextCache()
        orchestrator = ContextOrchestrator(cache=cache)

        first = await orchestrator.extract(screen_file)
        second = await orchestrator.extract(screen_file)

        assert not first.from_cache
        assert second.from_cache
        assert second.bundle is first.bundle
        assert second.state_history == [PipelineState.IDLE, PipelineState.DONE]

    @pytest.mark.asyncio
    async def test_interactions_change_the_cache_key(self, screen_file):
        cache = ContextCache()
        orchestrator = ContextOrchestrator(cache=cache)
        await orchestrator.extract(screen_file)
        result = await orchestrator.extract(screen_file, {"interactions": []})

        assert not result.from_cache
        assert len(cache) == 2

    @pytest.mark.parametrize("kwargs", [
        {"stage_timeout": 0},
        {"layout_tolerance": -1},
        {"max_component_depth": 0},
        {"validation_level": "paranoid"},
    ])
    def test_invalid_config_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            ExtractionConfig(**kwargs)

    def test_sync_wrapper(self, screen_file):
        result = extract_context(screen_file)
        assert result.state == PipelineState.DONE
        assert result.bundle.metadata.input_hash.startswith("sha256:")
