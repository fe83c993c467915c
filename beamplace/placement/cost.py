"""
Layout Cost Function

Scores a LayoutState as a scalar plus a labelled breakdown. Soft terms
(centre of mass, footprint, beam path length) are weighted by the caller;
hard terms (workspace / keep-out / overlap violations, beam misalignment,
fixed-length drift, beams blocked by obstacles) are added unconditionally.

Scoring is pure. Trial poses are passed as id -> position and id -> angle
overlays on top of the layout; the layout itself is never modified, so the
optimizer can score a candidate move without a save/restore cycle.
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, List, Mapping, Optional, Tuple

from ..geometry.collision import (
    boxes_overlap,
    box_inside,
    line_intersects_box,
    line_intersects_polygon,
)
from ..geometry.primitives import (
    angle_difference,
    beam_angle,
    distance,
    output_direction_at,
)
from ..layout.abstraction import Constraints, LayoutState, Rect

Point = Tuple[float, float]
Pose = Tuple[float, float, float]  # x, y, angle
Box = Tuple[float, float, float, float]

# Normalisation keeps the soft terms on comparable scales
FOOTPRINT_NORMALIZATION = 10000.0
PATH_LENGTH_NORMALIZATION = 100.0

# Hard-violation multipliers
PENALTY_MULTIPLIER = 1000.0
MOUNT_ZONE_BOUNDARY_FACTOR = 0.5
MOUNT_ZONE_COMPONENT_FACTOR = 0.3
MOUNT_ZONE_MOUNT_ZONE_FACTOR = 0.2
COMPONENT_OVERLAP_FACTOR = 2.0

# Beam physics terms
BEAM_ANGLE_PENALTY = 1000.0
BEAM_ANGLE_TOLERANCE = 0.5  # degrees
FIXED_LENGTH_PENALTY = 5000.0
FIXED_LENGTH_TOLERANCE = 0.1  # layout units
BEAM_COLLISION_PENALTY = 1000.0
MOUNT_ZONE_COLLISION_FACTOR = 0.5


@dataclass
class CostWeights:
    """Multipliers for the soft cost terms."""
    com: float = 0.5
    footprint: float = 0.25
    path_length: float = 0.25


@dataclass(frozen=True)
class CostBreakdown:
    """Total cost and its named parts."""
    total: float = 0.0
    com: float = 0.0
    footprint: float = 0.0
    path_length: float = 0.0
    penalty: float = 0.0
    beam_angle: float = 0.0
    fixed_length: float = 0.0
    beam_collision: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SegmentAlignment:
    """How well one beam segment follows its physically expected direction."""
    segment_id: str
    source_id: str
    target_id: str
    beam_angle: float
    expected_angle: float
    deviation: float
    is_valid: bool


class _ScoringContext:
    """Resolved poses and cached footprints for a single evaluation."""

    def __init__(self, layout: LayoutState,
                 positions: Optional[Mapping[str, Point]] = None,
                 angles: Optional[Mapping[str, float]] = None):
        self.layout = layout
        self.poses: Dict[str, Pose] = {}
        for cid, comp in layout.components.items():
            x, y = comp.x, comp.y
            if positions and cid in positions:
                x, y = positions[cid]
            angle = angles[cid] if angles and cid in angles else comp.angle
            self.poses[cid] = (x, y, angle)
        self._bboxes: Dict[str, Box] = {}
        self._mount_bounds: Dict[str, Optional[Box]] = {}
        self._corners: Dict[str, List[Point]] = {}

    def point(self, cid: str) -> Optional[Point]:
        pose = self.poses.get(cid)
        if pose is None:
            return None
        return (pose[0], pose[1])

    def bbox(self, cid: str) -> Box:
        box = self._bboxes.get(cid)
        if box is None:
            box = self.layout.components[cid].get_bounding_box(*self.poses[cid])
            self._bboxes[cid] = box
        return box

    def mount_bounds(self, cid: str) -> Optional[Box]:
        if cid not in self._mount_bounds:
            self._mount_bounds[cid] = self.layout.components[cid].get_mount_zone_bounds(
                *self.poses[cid])
        return self._mount_bounds[cid]

    def corners(self, cid: str) -> List[Point]:
        pts = self._corners.get(cid)
        if pts is None:
            pts = self.layout.components[cid].corners(*self.poses[cid])
            self._corners[cid] = pts
        return pts


def calculate_center_of_mass(context: _ScoringContext) -> Optional[Point]:
    """Mass-weighted centroid of all components, or None if massless."""
    total_mass = 0.0
    weighted_x = 0.0
    weighted_y = 0.0
    for cid, comp in context.layout.components.items():
        x, y, _ = context.poses[cid]
        total_mass += comp.mass
        weighted_x += comp.mass * x
        weighted_y += comp.mass * y
    if total_mass <= 0:
        return None
    return (weighted_x / total_mass, weighted_y / total_mass)


def calculate_com_cost(center_of_mass: Optional[Point],
                       mounting_zone: Optional[Rect]) -> float:
    """Squared distance from the centre of mass to the mounting zone centre.

    Zero when there is no zone, no mass, or the centroid is inside the zone.
    """
    if center_of_mass is None or mounting_zone is None:
        return 0.0
    if mounting_zone.contains(*center_of_mass):
        return 0.0
    zx, zy = mounting_zone.center
    dx = center_of_mass[0] - zx
    dy = center_of_mass[1] - zy
    return dx * dx + dy * dy


def calculate_footprint_cost(context: _ScoringContext) -> float:
    """Area of the box enclosing every component's footprint, normalized."""
    if not context.poses:
        return 0.0
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for cid in context.poses:
        bx0, by0, bx1, by1 = context.bbox(cid)
        min_x = min(min_x, bx0)
        min_y = min(min_y, by0)
        max_x = max(max_x, bx1)
        max_y = max(max_y, by1)
    return (max_x - min_x) * (max_y - min_y) / FOOTPRINT_NORMALIZATION


def calculate_path_length_cost(context: _ScoringContext) -> float:
    """Total centre-to-centre beam length, normalized."""
    total = 0.0
    for segment in context.layout.beam_path.get_all_segments():
        source = context.point(segment.source_id)
        target = context.point(segment.target_id)
        if source is None or target is None:
            continue
        total += distance(source, target)
    return total / PATH_LENGTH_NORMALIZATION


def calculate_penalty(context: _ScoringContext, constraints: Constraints) -> float:
    """Hard placement violations, additive per violation."""
    penalty = 0.0
    workspace = constraints.workspace.bounds
    zones = [zone.bounds.bounds for zone in constraints.active_keep_out_zones()]
    ids = list(context.poses.keys())

    for cid in ids:
        bbox = context.bbox(cid)
        if not box_inside(bbox, workspace):
            penalty += PENALTY_MULTIPLIER
        for zone in zones:
            if boxes_overlap(bbox, zone):
                penalty += PENALTY_MULTIPLIER

        mount = context.mount_bounds(cid)
        if mount is None:
            continue
        if not box_inside(mount, workspace):
            penalty += PENALTY_MULTIPLIER * MOUNT_ZONE_BOUNDARY_FACTOR
        for zone in zones:
            if boxes_overlap(mount, zone):
                penalty += PENALTY_MULTIPLIER * MOUNT_ZONE_BOUNDARY_FACTOR
        for other in ids:
            if other == cid:
                continue
            if boxes_overlap(mount, context.bbox(other)):
                penalty += PENALTY_MULTIPLIER * MOUNT_ZONE_COMPONENT_FACTOR
            other_mount = context.mount_bounds(other)
            if other_mount is not None and boxes_overlap(mount, other_mount):
                penalty += PENALTY_MULTIPLIER * MOUNT_ZONE_MOUNT_ZONE_FACTOR

    for i, cid in enumerate(ids):
        bbox = context.bbox(cid)
        for other in ids[i + 1:]:
            if boxes_overlap(bbox, context.bbox(other)):
                penalty += PENALTY_MULTIPLIER * COMPONENT_OVERLAP_FACTOR

    return penalty


def _trace(context: _ScoringContext, tolerance: float) -> List[SegmentAlignment]:
    """Propagate beam directions from every source through the graph.

    Each segment is scored at most once. The realized direction of a
    segment becomes the incoming direction of the next component
    downstream.
    """
    layout = context.layout
    alignments: List[SegmentAlignment] = []
    seen_segments = set()

    for source in layout.sources():
        stack: List[Tuple[str, Optional[float]]] = [(source.id, None)]
        while stack:
            comp_id, incoming = stack.pop()
            comp = layout.components.get(comp_id)
            if comp is None:
                continue
            cx, cy, cangle = context.poses[comp_id]
            for segment in layout.beam_path.get_outgoing_segments(comp_id):
                if segment.id in seen_segments:
                    continue
                seen_segments.add(segment.id)

                target = context.point(segment.target_id)
                if target is None:
                    continue
                expected = output_direction_at(comp, cangle, incoming, segment.source_port)
                if expected is None:
                    continue
                actual = beam_angle((cx, cy), target)
                if actual is None:
                    continue

                deviation = angle_difference(actual, expected)
                alignments.append(SegmentAlignment(
                    segment_id=segment.id,
                    source_id=comp_id,
                    target_id=segment.target_id,
                    beam_angle=actual,
                    expected_angle=expected,
                    deviation=deviation,
                    is_valid=deviation <= tolerance,
                ))
                stack.append((segment.target_id, actual))

    return alignments


def trace_beam_alignment(layout: LayoutState,
                         positions: Optional[Mapping[str, Point]] = None,
                         angles: Optional[Mapping[str, float]] = None,
                         tolerance: float = BEAM_ANGLE_TOLERANCE) -> List[SegmentAlignment]:
    """Per-segment alignment report for a layout (optionally with overlays)."""
    return _trace(_ScoringContext(layout, positions, angles), tolerance)


def calculate_beam_angle_penalty(context: _ScoringContext) -> float:
    """Penalty for beams that leave a component in the wrong direction."""
    penalty = 0.0
    for alignment in _trace(context, BEAM_ANGLE_TOLERANCE):
        if alignment.deviation > BEAM_ANGLE_TOLERANCE:
            penalty += BEAM_ANGLE_PENALTY * (alignment.deviation / 90.0)
    return penalty


def calculate_fixed_length_penalty(context: _ScoringContext) -> float:
    """Penalty for fixed-length segments that drift from their length."""
    penalty = 0.0
    for segment in context.layout.beam_path.get_fixed_length_segments():
        if segment.fixed_length is None or segment.fixed_length <= 0:
            continue
        source = context.point(segment.source_id)
        target = context.point(segment.target_id)
        if source is None or target is None:
            continue
        deviation = abs(distance(source, target) - segment.fixed_length)
        if deviation > FIXED_LENGTH_TOLERANCE:
            penalty += FIXED_LENGTH_PENALTY * (deviation / segment.fixed_length)
    return penalty


def calculate_beam_collision_penalty(context: _ScoringContext,
                                     constraints: Constraints) -> float:
    """Penalty for beams passing through components, mount zones or keep-outs."""
    penalty = 0.0
    zones = [zone.bounds.bounds for zone in constraints.active_keep_out_zones()]

    for segment in context.layout.beam_path.get_all_segments():
        p1 = context.point(segment.source_id)
        p2 = context.point(segment.target_id)
        if p1 is None or p2 is None or beam_angle(p1, p2) is None:
            continue
        line_box = (min(p1[0], p2[0]), min(p1[1], p2[1]),
                    max(p1[0], p2[0]), max(p1[1], p2[1]))

        for cid in context.poses:
            if cid == segment.source_id or cid == segment.target_id:
                continue
            if (boxes_overlap(line_box, context.bbox(cid)) and
                    line_intersects_polygon(p1, p2, context.corners(cid))):
                penalty += BEAM_COLLISION_PENALTY
            mount = context.mount_bounds(cid)
            if mount is not None and line_intersects_box(p1, p2, mount):
                penalty += BEAM_COLLISION_PENALTY * MOUNT_ZONE_COLLISION_FACTOR

        for zone in zones:
            if line_intersects_box(p1, p2, zone):
                penalty += BEAM_COLLISION_PENALTY

    return penalty


def evaluate(layout: LayoutState, weights: Optional[CostWeights] = None,
             positions: Optional[Mapping[str, Point]] = None,
             angles: Optional[Mapping[str, float]] = None) -> CostBreakdown:
    """
    Score a layout.

    Args:
        layout: Layout to score (never modified)
        weights: Soft-term multipliers (defaults to CostWeights())
        positions: Optional id -> (x, y) overlay replacing live positions
        angles: Optional id -> angle overlay replacing live angles

    Returns:
        CostBreakdown; all zeros when no component is movable
    """
    weights = weights or CostWeights()
    if not layout.movable_ids:
        return CostBreakdown()

    context = _ScoringContext(layout, positions, angles)
    constraints = layout.constraints

    com = calculate_com_cost(calculate_center_of_mass(context), constraints.mounting_zone)
    footprint = calculate_footprint_cost(context)
    path_length = calculate_path_length_cost(context)
    penalty = calculate_penalty(context, constraints)
    beam_angle_penalty = calculate_beam_angle_penalty(context)
    fixed_length = calculate_fixed_length_penalty(context)
    beam_collision = calculate_beam_collision_penalty(context, constraints)

    total = (
        weights.com * com +
        weights.footprint * footprint +
        weights.path_length * path_length +
        penalty + beam_angle_penalty + fixed_length + beam_collision
    )

    return CostBreakdown(
        total=total,
        com=com,
        footprint=footprint,
        path_length=path_length,
        penalty=penalty,
        beam_angle=beam_angle_penalty,
        fixed_length=fixed_length,
        beam_collision=beam_collision,
    )
