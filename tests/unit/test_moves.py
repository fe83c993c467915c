"""
Tests for geometry-preserving move generators and candidate validation.

The constrained moves are checked as properties over many seeds:
- stretch keeps the stretched segment's direction
- rotate keeps every cascaded segment's length
- translate-chain shifts everything by one grid-aligned displacement
"""

import math
import random

import pytest

from beamplace.geometry.primitives import allowed_quarter_turns, beam_angle, distance
from beamplace.layout.abstraction import BeamPath, Component, ComponentType, LayoutState
from beamplace.placement.moves import CandidateMove, MoveConfig, MoveGenerator, MoveType

SEEDS = range(25)


@pytest.fixture
def fold_layout() -> LayoutState:
    """laser -> m1 -> m2 -> det, all on the 25-unit grid."""
    comps = [
        Component(id="laser", type=ComponentType.SOURCE, x=100.0, y=300.0,
                  emission_angle=0.0, is_fixed=True, is_angle_fixed=True),
        Component(id="m1", type=ComponentType.MIRROR, x=300.0, y=300.0, angle=135.0),
        Component(id="m2", type=ComponentType.MIRROR, x=300.0, y=100.0, angle=45.0),
        Component(id="det", type=ComponentType.DETECTOR, x=500.0, y=100.0,
                  is_angle_fixed=True),
    ]
    beam_path = BeamPath()
    beam_path.connect("laser", "m1", id="b1")
    beam_path.connect("m1", "m2", "reflected", id="b2")
    beam_path.connect("m2", "det", "reflected", id="b3")
    return LayoutState(comps, beam_path)


def _generator(layout, seed=0, **config):
    return MoveGenerator(layout, MoveConfig(**config), random.Random(seed))


def _after(candidate, positions, comp_id):
    return candidate.positions.get(comp_id, positions[comp_id])


# =============================================================================
# Stretch
# =============================================================================

class TestStretch:

    def test_direction_preserved(self, fold_layout):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).stretch(positions, 50.0)
            assert candidate is not None
            assert candidate.move_type is MoveType.STRETCH

            segment = fold_layout.beam_path.get_segment(candidate.origin_id)
            src = positions[segment.source_id]
            old = positions[segment.target_id]
            new = candidate.positions[segment.target_id]
            ox, oy = old[0] - src[0], old[1] - src[1]
            nx, ny = new[0] - src[0], new[1] - src[1]
            assert ox * ny - oy * nx == pytest.approx(0.0, abs=1e-6)
            assert ox * nx + oy * ny > 0
            assert math.hypot(nx, ny) >= 25.0 - 1e-9

    def test_downstream_carried_rigidly(self, fold_layout):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).stretch(positions, 50.0)
            shifts = {
                (round(x - positions[cid][0], 9), round(y - positions[cid][1], 9))
                for cid, (x, y) in candidate.positions.items()
            }
            assert len(shifts) == 1

    def test_fixed_target_not_stretched(self):
        comps = [
            Component(id="a", type=ComponentType.SOURCE, x=100.0, y=100.0, is_fixed=True),
            Component(id="b", type=ComponentType.DETECTOR, x=300.0, y=100.0, is_fixed=True),
        ]
        beam_path = BeamPath()
        beam_path.connect("a", "b")
        layout = LayoutState(comps, beam_path)
        assert _generator(layout).stretch(layout.positions(), 50.0) is None


# =============================================================================
# Rotate
# =============================================================================

class TestRotate:

    def test_cascade_preserves_segment_lengths(self, fold_layout):
        positions = fold_layout.positions()
        angles = fold_layout.angles()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).rotate(positions, angles, angles)
            assert candidate is not None
            assert candidate.move_type is MoveType.ROTATE
            for segment in fold_layout.beam_path.get_all_segments():
                before = distance(positions[segment.source_id], positions[segment.target_id])
                after = distance(_after(candidate, positions, segment.source_id),
                                 _after(candidate, positions, segment.target_id))
                if segment.target_id in candidate.positions:
                    assert after == pytest.approx(before)

    def test_first_mirror_swings_chain(self, fold_layout):
        fold_layout.components["m2"].is_angle_fixed = True
        positions = fold_layout.positions()
        angles = fold_layout.angles()
        candidate = _generator(fold_layout).rotate(positions, angles, angles)

        # 135 -> 45 is a -90 degree turn
        assert candidate.angles == {"m1": 45.0}
        assert candidate.positions["m2"] == (100.0, 300.0)
        assert candidate.positions["det"] == (100.0, 100.0)

    def test_downstream_angles_follow(self, fold_layout):
        fold_layout.components["m2"].is_angle_fixed = False
        positions = fold_layout.positions()
        angles = fold_layout.angles()
        gen = _generator(fold_layout)
        gen.angle_movable_ids = ["m1"]
        candidate = gen.rotate(positions, angles, angles)
        assert candidate.angles["m2"] == 315.0
        assert "det" not in candidate.angles

    def test_choices_relative_to_original_angle(self, fold_layout):
        positions = fold_layout.positions()
        original = fold_layout.angles()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).rotate(positions, original, original)
            root = candidate.origin_id
            valid = fold_layout.components[root].get_valid_angles()
            assert candidate.angles[root] in allowed_quarter_turns(valid, original[root])
            assert candidate.angles[root] != original[root]

    def test_no_rotatable_components(self, fold_layout):
        gen = _generator(fold_layout)
        gen.angle_movable_ids = []
        angles = fold_layout.angles()
        assert gen.rotate(fold_layout.positions(), angles, angles) is None


# =============================================================================
# Translate chain
# =============================================================================

class TestTranslateChain:

    def test_uniform_grid_displacement(self, fold_layout):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).translate_chain(positions, 80.0)
            assert candidate.move_type is MoveType.TRANSLATE_CHAIN
            shifts = {
                (x - positions[cid][0], y - positions[cid][1])
                for cid, (x, y) in candidate.positions.items()
            }
            assert len(shifts) == 1
            dx, dy = shifts.pop()
            assert (dx, dy) != (0.0, 0.0)
            assert dx % 25.0 == 0.0 and dy % 25.0 == 0.0
            assert math.hypot(dx, dy) <= 80.0

    @pytest.mark.parametrize("step_size", [25.0, 30.0, 36.0, 60.0])
    def test_displacement_bounded_by_step_size(self, fold_layout, step_size):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).translate_chain(positions, step_size)
            root = candidate.origin_id
            dx = candidate.positions[root][0] - positions[root][0]
            dy = candidate.positions[root][1] - positions[root][1]
            assert 0.0 < math.hypot(dx, dy) <= step_size

    def test_step_smaller_than_grid(self, fold_layout):
        positions = fold_layout.positions()
        angles = fold_layout.angles()
        gen = _generator(fold_layout)
        assert gen.translate_chain(positions, 5.0) is None

        gen.config.stretch_probability = 0.0
        gen.config.rotate_probability = 0.0
        candidate = gen.propose(positions, angles, angles, 5.0)
        assert candidate.move_type is MoveType.RANDOM_TRANSLATE

    def test_moves_whole_downstream_chain(self, fold_layout):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).translate_chain(positions, 50.0)
            root = candidate.origin_id
            expected = {root} | set(fold_layout.beam_path.get_downstream(root))
            assert set(candidate.positions) == expected

    def test_beam_angles_unchanged(self, fold_layout):
        positions = fold_layout.positions()
        for seed in SEEDS:
            candidate = _generator(fold_layout, seed).translate_chain(positions, 50.0)
            for segment in fold_layout.beam_path.get_all_segments():
                if (segment.source_id in candidate.positions and
                        segment.target_id in candidate.positions):
                    before = beam_angle(positions[segment.source_id],
                                        positions[segment.target_id])
                    after = beam_angle(candidate.positions[segment.source_id],
                                       candidate.positions[segment.target_id])
                    assert after == before


# =============================================================================
# Proposal
# =============================================================================

class TestPropose:

    def test_random_translate_without_beams(self):
        layout = LayoutState([Component(id="m", type=ComponentType.MIRROR, x=300.0, y=300.0)])
        gen = _generator(layout)
        candidate = gen.propose(layout.positions(), layout.angles(), layout.angles(), 50.0)
        assert candidate.move_type is MoveType.RANDOM_TRANSLATE
        x, y = candidate.positions["m"]
        assert x % 25.0 == 0.0 and y % 25.0 == 0.0

    def test_nothing_movable(self, frozen_layout):
        gen = _generator(frozen_layout)
        angles = frozen_layout.angles()
        assert gen.propose(frozen_layout.positions(), angles, angles, 50.0) is None

    def test_only_constrained_moves_with_beams(self, fold_layout):
        positions = fold_layout.positions()
        angles = fold_layout.angles()
        gen = _generator(fold_layout, 3)
        kinds = {gen.propose(positions, angles, angles, 50.0).move_type for _ in range(200)}
        assert kinds == {MoveType.STRETCH, MoveType.ROTATE, MoveType.TRANSLATE_CHAIN}


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    def test_accepts_clear_move(self, chain_layout):
        gen = _generator(chain_layout)
        candidate = CandidateMove(MoveType.RANDOM_TRANSLATE, {"det": (300.0, 150.0)})
        valid = gen.validate(candidate, chain_layout.positions(), chain_layout.angles())
        assert valid is not None
        assert valid.positions == {"det": (300.0, 150.0)}

    def test_rejects_crowding(self, chain_layout):
        # (25 + 20) * 0.25 = 11.25 minimum centre distance to m1
        gen = _generator(chain_layout)
        candidate = CandidateMove(MoveType.RANDOM_TRANSLATE, {"det": (310.0, 300.0)})
        assert gen.validate(candidate, chain_layout.positions(), chain_layout.angles()) is None

    def test_rejects_workspace_margin(self, chain_layout):
        gen = _generator(chain_layout)
        candidate = CandidateMove(MoveType.RANDOM_TRANSLATE, {"det": (3.0, 300.0)})
        assert gen.validate(candidate, chain_layout.positions(), chain_layout.angles()) is None

    def test_rejects_rotation_into_margin(self, chain_layout):
        # A 40x20 body centred at x=22 clears the margin upright (20 wide)
        # but not lying flat (40 wide)
        chain_layout.components["laser"].position = (22.0, 300.0)
        gen = _generator(chain_layout)
        upright = CandidateMove(MoveType.ROTATE, angles={"laser": 90.0})
        positions = chain_layout.positions()
        angles = chain_layout.angles()
        assert gen.validate(upright, positions, angles) is not None
        angles["laser"] = 90.0
        flat = CandidateMove(MoveType.ROTATE, angles={"laser": 0.0})
        assert gen.validate(flat, positions, angles) is None

    def test_rejects_chain_move_needing_clamp(self, chain_layout):
        # The body of m1 clears the margin at x=16 but its mount zone does not
        chain_layout.components["m1"].mount_zone.enabled = True
        gen = _generator(chain_layout)
        positions = chain_layout.positions()
        angles = chain_layout.angles()
        shifted = {"m1": (16.0, 300.0), "det": (16.0, 100.0)}
        for move_type in (MoveType.TRANSLATE_CHAIN, MoveType.STRETCH, MoveType.ROTATE):
            candidate = CandidateMove(move_type, dict(shifted))
            assert gen.validate(candidate, positions, angles) is None

        loose = CandidateMove(MoveType.RANDOM_TRANSLATE, dict(shifted))
        valid = gen.validate(loose, positions, angles)
        assert valid is not None
        assert valid.positions["m1"][0] == pytest.approx(10.0 + 7.5 * math.sqrt(2))
        assert valid.positions["det"] == (16.0, 100.0)

    def test_clamp_to_workspace(self, chain_layout):
        gen = _generator(chain_layout)
        det = chain_layout.components["det"]
        x, y = gen.clamp_to_workspace(det, (-50.0, 700.0), 0.0)
        assert x == pytest.approx(10.0)
        assert y == pytest.approx(590.0)

    def test_clamp_includes_mount_zone(self, chain_layout):
        det = chain_layout.components["det"]
        det.mount_zone.enabled = True
        gen = _generator(chain_layout)
        x, _ = gen.clamp_to_workspace(det, (-50.0, 300.0), 0.0)
        assert x == pytest.approx(20.0)
