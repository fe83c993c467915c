"""
Geometry-Preserving Move Generators

Candidate moves for the annealer. Each generator builds an overlay of
new positions/angles keyed by component id without touching the layout:

- stretch: slide a segment's target along the existing beam direction,
  carrying everything downstream with it (beam angles unchanged)
- rotate: turn a component by a quarter-turn multiple relative to its
  original orientation and swing every downstream component around with
  it (segment lengths unchanged)
- translate-chain: shift a component and everything downstream by the
  same grid-aligned compass displacement (all relative angles unchanged)
- random translate: unconstrained nudge, used when there is no beam graph

Candidates then pass through validate(), a cheap geometric pre-filter
that clamps positions to the workspace and rejects moves that crowd a
workspace edge or another component.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from ..geometry.primitives import (
    allowed_quarter_turns,
    angle_difference,
    normalize_angle,
    normalize_angle_diff,
    rotate_vector,
    snap_to_grid,
)
from ..layout.abstraction import Component, LayoutState

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Unit steps for the 8 compass directions (diagonals move one grid step
# on each axis)
COMPASS_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (1, 0), (1, 1), (0, 1), (-1, 1),
    (-1, 0), (-1, -1), (0, -1), (1, -1),
)


class MoveType(Enum):
    """Kinds of candidate moves."""
    STRETCH = "stretch"
    ROTATE = "rotate"
    TRANSLATE_CHAIN = "translate_chain"
    RANDOM_TRANSLATE = "random_translate"


@dataclass
class MoveConfig:
    """Configuration for move generation and validation."""
    grid_size: float = 25.0  # table hole pitch
    min_segment_length: float = 25.0  # stretch never shortens below this
    workspace_margin: float = 5.0  # keep bodies this far from workspace edges
    spacing_factor: float = 0.25  # min centre distance = (size_a + size_b) * factor

    # Move mix when a beam graph exists (remainder is translate-chain)
    stretch_probability: float = 0.5
    rotate_probability: float = 0.25


@dataclass
class CandidateMove:
    """Proposed new positions/angles keyed by component id."""
    move_type: MoveType
    positions: Dict[str, Point] = field(default_factory=dict)
    angles: Dict[str, float] = field(default_factory=dict)
    origin_id: Optional[str] = None  # component or segment that triggered the move

    @property
    def is_empty(self) -> bool:
        return not self.positions and not self.angles


class MoveGenerator:
    """
    Proposes and validates candidate moves against a layout.

    The generator reads the optimizer's current position/angle maps and
    the beam graph; it never writes to components.
    """

    def __init__(self, layout: LayoutState, config: Optional[MoveConfig] = None,
                 rng: Optional[random.Random] = None):
        self.layout = layout
        self.config = config or MoveConfig()
        self.rng = rng or random.Random()
        self.movable_ids = layout.movable_ids
        self.angle_movable_ids = layout.angle_movable_ids

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    def propose(self, positions: Mapping[str, Point], angles: Mapping[str, float],
                original_angles: Mapping[str, float],
                step_size: float) -> Optional[CandidateMove]:
        """Pick a move type and build a candidate.

        Falls back to a random translate when the chosen constrained move
        is not possible (e.g. no angle-movable component). Returns None
        only when nothing at all can move.
        """
        candidate = None
        if len(self.layout.beam_path) > 0:
            roll = self.rng.random()
            cfg = self.config
            if roll < cfg.stretch_probability:
                candidate = self.stretch(positions, step_size)
            elif roll < cfg.stretch_probability + cfg.rotate_probability:
                candidate = self.rotate(positions, angles, original_angles)
            else:
                candidate = self.translate_chain(positions, step_size)

        if candidate is None:
            candidate = self.random_translate(positions, angles, step_size)
        return candidate

    def stretch(self, positions: Mapping[str, Point],
                step_size: float) -> Optional[CandidateMove]:
        """Change one segment's length along its current direction."""
        segments = self.layout.beam_path.get_all_segments()
        if not segments:
            return None
        segment = self.rng.choice(segments)

        components = self.layout.components
        source = components.get(segment.source_id)
        target = components.get(segment.target_id)
        if source is None or target is None or target.is_fixed:
            return None

        sx, sy = positions[source.id]
        tx, ty = positions[target.id]
        dx, dy = tx - sx, ty - sy
        length = math.hypot(dx, dy)
        if length < 1:
            return None

        delta = (self.rng.random() * 2 - 1) * step_size
        new_length = max(self.config.min_segment_length, length + delta)
        ux, uy = dx / length, dy / length
        new_target = (sx + ux * new_length, sy + uy * new_length)
        shift = (new_target[0] - tx, new_target[1] - ty)

        candidate = CandidateMove(MoveType.STRETCH, {target.id: new_target},
                                  origin_id=segment.id)
        for down_id in self.layout.beam_path.get_downstream(target.id):
            if down_id in (source.id, target.id):
                continue
            self._shift(candidate, down_id, positions, shift)
        return candidate

    def rotate(self, positions: Mapping[str, Point], angles: Mapping[str, float],
               original_angles: Mapping[str, float]) -> Optional[CandidateMove]:
        """Quarter-turn a component and swing its downstream chain with it.

        Allowed orientations are the component's valid angles that sit a
        multiple of 90 degrees away from its *original* angle.
        """
        if not self.angle_movable_ids:
            return None
        comp_id = self.rng.choice(self.angle_movable_ids)
        component = self.layout.components[comp_id]

        current = angles[comp_id]
        allowed = allowed_quarter_turns(component.get_valid_angles(),
                                        original_angles.get(comp_id, current))
        options = [a for a in allowed if angle_difference(a, current) > 1e-6]
        if not options:
            return None

        new_angle = self.rng.choice(options)
        delta = normalize_angle_diff(new_angle - current)
        candidate = CandidateMove(MoveType.ROTATE, angles={comp_id: new_angle},
                                  origin_id=comp_id)
        self._cascade_rotation(candidate, comp_id, delta, positions, angles)
        return candidate

    def _cascade_rotation(self, candidate: CandidateMove, root_id: str, delta: float,
                          positions: Mapping[str, Point], angles: Mapping[str, float]):
        """Reposition everything downstream of root_id for a rotation by delta.

        Each outgoing segment keeps its length while its direction turns by
        delta around the (possibly already moved) upstream component.
        """
        components = self.layout.components
        visited = {root_id}
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            old_x, old_y = positions[node_id]
            new_x, new_y = candidate.positions.get(node_id, (old_x, old_y))

            for segment in self.layout.beam_path.get_outgoing_segments(node_id):
                target_id = segment.target_id
                target = components.get(target_id)
                if target is None or target.is_fixed or target_id in visited:
                    continue

                tx, ty = positions[target_id]
                vx, vy = tx - old_x, ty - old_y
                if math.hypot(vx, vy) < 1:
                    continue

                rx, ry = rotate_vector(vx, vy, delta)
                new_target = (new_x + rx, new_y + ry)
                if target.snap_to_grid:
                    new_target = snap_to_grid(new_target, self.config.grid_size)
                candidate.positions[target_id] = new_target
                if not target.is_angle_fixed:
                    candidate.angles[target_id] = normalize_angle(angles[target_id] + delta)

                visited.add(target_id)
                stack.append(target_id)

    def translate_chain(self, positions: Mapping[str, Point],
                        step_size: float) -> Optional[CandidateMove]:
        """Shift a component and its downstream chain along a compass direction.

        The displacement is a whole number of grid steps whose length does
        not exceed step_size. Returns None when not even one grid step fits.
        """
        if not self.movable_ids:
            return None

        grid = self.config.grid_size
        if grid > 0:
            directions = [d for d in COMPASS_DIRECTIONS
                          if grid * math.hypot(*d) <= step_size]
            if not directions:
                return None
            sx, sy = self.rng.choice(directions)
            steps = self.rng.randint(1, int(step_size // (grid * math.hypot(sx, sy))))
            shift = (sx * steps * grid, sy * steps * grid)
        else:
            sx, sy = self.rng.choice(COMPASS_DIRECTIONS)
            dist = self.rng.random() * step_size / math.hypot(sx, sy)
            shift = (sx * dist, sy * dist)
        comp_id = self.rng.choice(self.movable_ids)

        candidate = CandidateMove(MoveType.TRANSLATE_CHAIN, origin_id=comp_id)
        self._shift(candidate, comp_id, positions, shift)
        for down_id in self.layout.beam_path.get_downstream(comp_id):
            if down_id != comp_id:
                self._shift(candidate, down_id, positions, shift)
        return candidate

    def random_translate(self, positions: Mapping[str, Point], angles: Mapping[str, float],
                         step_size: float) -> Optional[CandidateMove]:
        """Move one component in a random direction, ignoring the beam graph."""
        if not self.movable_ids:
            return None
        comp_id = self.rng.choice(self.movable_ids)
        component = self.layout.components[comp_id]

        theta = self.rng.random() * 2 * math.pi
        dist = self.rng.random() * step_size
        x, y = positions[comp_id]
        new_pos = (x + dist * math.cos(theta), y + dist * math.sin(theta))
        new_pos = self.clamp_to_workspace(component, new_pos, angles[comp_id])
        if component.snap_to_grid:
            new_pos = snap_to_grid(new_pos, self.config.grid_size)
        return CandidateMove(MoveType.RANDOM_TRANSLATE, {comp_id: new_pos}, origin_id=comp_id)

    def _shift(self, candidate: CandidateMove, comp_id: str,
               positions: Mapping[str, Point], shift: Point):
        component = self.layout.components.get(comp_id)
        if component is None or component.is_fixed:
            return
        x, y = positions[comp_id]
        candidate.positions[comp_id] = (x + shift[0], y + shift[1])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clamp_to_workspace(self, component: Component, pos: Point,
                           angle: Optional[float] = None) -> Point:
        """Clamp a position so the body (and mount zone) stays in the workspace."""
        ws = self.layout.constraints.workspace
        bx0, by0, bx1, by1 = component.get_bounding_box(0.0, 0.0, angle)
        min_x = ws.x - bx0
        max_x = ws.x + ws.width - bx1
        min_y = ws.y - by0
        max_y = ws.y + ws.height - by1

        mount = component.get_mount_zone_bounds(0.0, 0.0, angle)
        if mount is not None:
            min_x = max(min_x, ws.x - mount[0])
            max_x = min(max_x, ws.x + ws.width - mount[2])
            min_y = max(min_y, ws.y - mount[1])
            max_y = min(max_y, ws.y + ws.height - mount[3])

        return (max(min_x, min(max_x, pos[0])), max(min_y, min(max_y, pos[1])))

    def validate(self, candidate: CandidateMove, positions: Mapping[str, Point],
                 angles: Mapping[str, float]) -> Optional[CandidateMove]:
        """Clamp a candidate to the workspace and apply the spacing pre-filter.

        Returns the clamped candidate, or None when any moved component
        ends up within the workspace margin or closer than
        (size_a + size_b) * spacing_factor to another component. Only
        random translates are clamped; a constrained move that would need
        clamping is rejected instead.
        """
        components = self.layout.components
        clamped: Dict[str, Point] = {}
        for comp_id, pos in candidate.positions.items():
            angle = candidate.angles.get(comp_id, angles[comp_id])
            clamped[comp_id] = self.clamp_to_workspace(components[comp_id], pos, angle)
            if (clamped[comp_id] != pos and
                    candidate.move_type is not MoveType.RANDOM_TRANSLATE):
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("Rejected %s: %s outside workspace",
                                 candidate.move_type.value, comp_id)
                return None

        ws_x0, ws_y0, ws_x1, ws_y1 = self.layout.constraints.workspace.bounds
        margin = self.config.workspace_margin
        moved = set(clamped) | set(candidate.angles)

        for comp_id in moved:
            component = components[comp_id]
            x, y = clamped.get(comp_id, positions[comp_id])
            angle = candidate.angles.get(comp_id, angles[comp_id])
            bx0, by0, bx1, by1 = component.get_bounding_box(x, y, angle)
            if (bx0 < ws_x0 + margin or by0 < ws_y0 + margin or
                    bx1 > ws_x1 - margin or by1 > ws_y1 - margin):
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("Rejected %s: %s within workspace margin",
                                 candidate.move_type.value, comp_id)
                return None

            for other_id, other in components.items():
                if other_id == comp_id:
                    continue
                ox, oy = clamped.get(other_id, positions[other_id])
                min_dist = (component.size + other.size) * self.config.spacing_factor
                if math.hypot(x - ox, y - oy) < min_dist:
                    if logger.isEnabledFor(logging.DEBUG):
                        logger.debug("Rejected %s: %s too close to %s",
                                     candidate.move_type.value, comp_id, other_id)
                    return None

        return CandidateMove(candidate.move_type, clamped, dict(candidate.angles),
                             origin_id=candidate.origin_id)
