"""Layout pattern inference from sibling geometry.

For every container with at least two visible children (children whose
bounds were defaulted by the parser are left out of the geometry; fewer
than two measurable children give a Flow with confidence 0):
- Stack: gaps near-uniform along one axis and children aligned on the
  cross axis (start, center or end)
- Grid: children cluster into a full rows x columns rectangle (2x2 or
  more) with uniform gaps along both axes
- Flow: anything else, reported with scaled-down confidence

Gap confidence is ``1 - stddev(gaps) / mean(gaps)`` clamped to [0, 1].
Containers with Figma auto-layout (layoutMode) keep the declared axis and
are tagged ``source="auto-layout"``; geometry still drives confidence.
"""

from __future__ import annotations

import logging
import statistics
from typing import Callable, List, Optional, Sequence, Tuple

from .. import settings
from ..cancellation import CancellationToken, checkpoint
from ..models import LayoutKind, LayoutPattern
from ..nodes.registry import Bounds, NodeRegistry, NormalizedNode

logger = logging.getLogger(__name__)

FLOW_CONFIDENCE_FACTOR = 0.3

HORIZONTAL = "horizontal"
VERTICAL = "vertical"

_AUTO_LAYOUT_AXES = {"HORIZONTAL": HORIZONTAL, "VERTICAL": VERTICAL}


def gap_confidence(gaps: Sequence[float]) -> float:
    """``1 - stddev/mean`` of the gaps, clamped to [0, 1].

    Fewer than two gaps give 0. Children that abut exactly (all gaps 0)
    are perfectly regular and give 1.0; any other non-positive mean
    (overlapping children) gives 0.
    """
    if len(gaps) < 2:
        return 0.0
    if all(g == 0 for g in gaps):
        return 1.0
    mean = statistics.fmean(gaps)
    if mean <= 0:
        return 0.0
    score = 1.0 - statistics.pstdev(gaps) / mean
    return round(min(max(score, 0.0), 1.0), 4)


def _uniform(gaps: Sequence[float], tolerance: float) -> bool:
    if not gaps:
        return False
    mean = statistics.fmean(gaps)
    return all(abs(g - mean) <= tolerance for g in gaps)


def _edge_gaps(ordered: Sequence[Bounds], axis: str) -> List[float]:
    if axis == HORIZONTAL:
        return [b.x - a.right for a, b in zip(ordered, ordered[1:])]
    return [b.y - a.bottom for a, b in zip(ordered, ordered[1:])]


def _cross_alignment(boxes: Sequence[Bounds], axis: str, tolerance: float) -> Optional[str]:
    """Which cross-axis edge (start/center/end) all boxes share, if any."""
    if axis == HORIZONTAL:
        anchors: Tuple[Tuple[str, Callable[[Bounds], float]], ...] = (
            ("start", lambda b: b.y),
            ("center", lambda b: b.center_y),
            ("end", lambda b: b.bottom),
        )
    else:
        anchors = (
            ("start", lambda b: b.x),
            ("center", lambda b: b.center_x),
            ("end", lambda b: b.right),
        )
    for name, anchor in anchors:
        values = [anchor(b) for b in boxes]
        if max(values) - min(values) <= tolerance:
            return name
    return None


def _cluster(values: Sequence[float], tolerance: float) -> List[float]:
    """Group coordinates within tolerance of a group's first member."""
    anchors: List[float] = []
    for value in values:
        if not any(abs(anchor - value) <= tolerance for anchor in anchors):
            anchors.append(value)
    return sorted(anchors)


class LayoutAnalyzer:
    """Infers Stack / Grid / Flow patterns for each multi-child container."""

    def __init__(self, tolerance: Optional[float] = None):
        self.tolerance = tolerance if tolerance is not None else settings.LAYOUT_TOLERANCE

    def analyze(
        self,
        registry: NodeRegistry,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[LayoutPattern]:
        patterns: List[LayoutPattern] = []
        for node in registry:
            checkpoint(cancel_token)
            children = [c for c in registry.children(node.id) if c.visible]
            if len(children) < 2:
                continue
            patterns.append(self._classify(node, children))

        logger.info(
            "LayoutAnalyzer: %d patterns (%d stack, %d grid, %d flow)",
            len(patterns),
            sum(1 for p in patterns if p.kind == LayoutKind.STACK),
            sum(1 for p in patterns if p.kind == LayoutKind.GRID),
            sum(1 for p in patterns if p.kind == LayoutKind.FLOW),
        )
        return patterns

    # -- classification --

    def _classify(self, container: NormalizedNode, children: List[NormalizedNode]) -> LayoutPattern:
        style = container.style
        declared_axis = _AUTO_LAYOUT_AXES.get((style.layout_mode or "").upper())
        source = "auto-layout" if style.layout_mode else "inferred"
        # Children without real bounds sit at (0,0); they say nothing about spacing
        measured = [c for c in children if not c.bounds_defaulted]
        participants = tuple(c.id for c in measured)
        boxes = [c.bounds for c in measured]

        def pattern(kind: LayoutKind, confidence: float, **extra) -> LayoutPattern:
            return LayoutPattern(
                id=f"layout:{container.id}",
                kind=kind,
                container_id=container.id,
                participant_node_ids=extra.pop("participants", participants),
                confidence=confidence,
                source=source,
                **extra,
            )

        if len(measured) < 2:
            logger.debug(
                "LayoutAnalyzer: %s has %d of %d children with measurable bounds",
                container.id, len(measured), len(children),
            )
            return pattern(
                LayoutKind.FLOW,
                0.0,
                participants=tuple(c.id for c in children),
                gap=style.item_spacing or None,
            )

        if declared_axis is not None and not style.layout_wrap:
            stack = self._stack(boxes, declared_axis, require_alignment=False)
            gap = style.item_spacing if style.item_spacing else (stack[2] if stack else None)
            return pattern(
                LayoutKind.STACK,
                stack[0] if stack else 0.0,
                axis=declared_axis,
                alignment=stack[1] if stack else None,
                gap=gap,
                rows=len(boxes) if declared_axis == VERTICAL else 1,
                columns=len(boxes) if declared_axis == HORIZONTAL else 1,
            )

        stacks = []
        for axis in (HORIZONTAL, VERTICAL):
            found = self._stack(boxes, axis, require_alignment=True)
            if found is not None:
                stacks.append((found[0], axis, found[1], found[2]))
        if stacks:
            # Highest confidence; horizontal first on a tie
            confidence, axis, alignment, gap = max(stacks, key=lambda s: s[0])
            return pattern(
                LayoutKind.STACK,
                confidence,
                axis=axis,
                alignment=alignment,
                gap=gap,
                rows=len(boxes) if axis == VERTICAL else 1,
                columns=len(boxes) if axis == HORIZONTAL else 1,
            )

        grid = self._grid(boxes)
        if grid is not None:
            confidence, rows, columns, gap = grid
            return pattern(
                LayoutKind.GRID, confidence, gap=gap, rows=rows, columns=columns,
            )

        flow_confidence = max(
            gap_confidence(_edge_gaps(sorted(boxes, key=lambda b: (b.x, b.y)), HORIZONTAL)),
            gap_confidence(_edge_gaps(sorted(boxes, key=lambda b: (b.y, b.x)), VERTICAL)),
        )
        return pattern(
            LayoutKind.FLOW,
            round(flow_confidence * FLOW_CONFIDENCE_FACTOR, 4),
            gap=style.item_spacing or None,
        )

    def _stack(
        self,
        boxes: Sequence[Bounds],
        axis: str,
        require_alignment: bool,
    ) -> Optional[Tuple[float, Optional[str], float]]:
        """(confidence, alignment, mean gap) when boxes stack along axis."""
        if axis == HORIZONTAL:
            ordered = sorted(boxes, key=lambda b: (b.x, b.y))
        else:
            ordered = sorted(boxes, key=lambda b: (b.y, b.x))
        gaps = _edge_gaps(ordered, axis)
        alignment = _cross_alignment(boxes, axis, self.tolerance)
        if require_alignment and (alignment is None or not _uniform(gaps, self.tolerance)):
            return None
        return gap_confidence(gaps), alignment, round(statistics.fmean(gaps), 2)

    def _grid(self, boxes: Sequence[Bounds]) -> Optional[Tuple[float, int, int, float]]:
        """(confidence, rows, columns, mean column gap) for a full rectangle."""
        row_anchors = _cluster([b.y for b in boxes], self.tolerance)
        col_anchors = _cluster([b.x for b in boxes], self.tolerance)
        rows, columns = len(row_anchors), len(col_anchors)
        if rows < 2 or columns < 2 or rows * columns != len(boxes):
            return None

        row_gaps: List[float] = []
        for anchor in row_anchors:
            members = sorted(
                (b for b in boxes if abs(b.y - anchor) <= self.tolerance), key=lambda b: b.x,
            )
            if len(members) != columns:
                return None
            row_gaps.extend(_edge_gaps(members, HORIZONTAL))

        col_gaps: List[float] = []
        for anchor in col_anchors:
            members = sorted(
                (b for b in boxes if abs(b.x - anchor) <= self.tolerance), key=lambda b: b.y,
            )
            if len(members) != rows:
                return None
            col_gaps.extend(_edge_gaps(members, VERTICAL))

        if not (_uniform(row_gaps, self.tolerance) and _uniform(col_gaps, self.tolerance)):
            return None
        confidence = min(gap_confidence(row_gaps), gap_confidence(col_gaps))
        return confidence, rows, columns, round(statistics.fmean(row_gaps), 2)
