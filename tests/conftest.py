"""
Shared test fixtures for BeamPlace tests.

Provides small optical layouts on the default 600x600 table. Every
position sits on the 25-unit grid so snapping never moves anything.
"""

import pytest
from pathlib import Path

from beamplace.layout.abstraction import (
    BeamPath,
    Component,
    ComponentType,
    Constraints,
    KeepOutZone,
    LayoutState,
    Rect,
)


def make_chain_layout() -> LayoutState:
    """Laser -> fold mirror -> detector, with every beam aligned.

    The laser fires along +x; the mirror at 135 degrees folds the beam to
    270 degrees (up the table) into the detector.
    """
    laser = Component(
        id="laser",
        type=ComponentType.SOURCE,
        x=100.0,
        y=300.0,
        angle=0.0,
        emission_angle=0.0,
        is_fixed=True,
        is_angle_fixed=True,
    )
    mirror = Component(id="m1", type=ComponentType.MIRROR, x=300.0, y=300.0, angle=135.0)
    detector = Component(id="det", type=ComponentType.DETECTOR, x=300.0, y=100.0, angle=90.0)

    beam_path = BeamPath()
    beam_path.connect("laser", "m1", "output", id="b1")
    beam_path.connect("m1", "det", "reflected", id="b2")

    return LayoutState([laser, mirror, detector], beam_path, name="chain")


@pytest.fixture
def chain_layout() -> LayoutState:
    """Aligned three-component beam chain."""
    return make_chain_layout()


@pytest.fixture
def chain_factory():
    """Callable returning a fresh chain layout (for comparing runs)."""
    return make_chain_layout


@pytest.fixture
def ray_layout() -> LayoutState:
    """Fixed source A at the origin firing along 0 degrees, movable detector B."""
    source = Component(
        id="A",
        type=ComponentType.SOURCE,
        x=0.0,
        y=0.0,
        emission_angle=0.0,
        is_fixed=True,
        is_angle_fixed=True,
    )
    target = Component(id="B", type=ComponentType.DETECTOR, x=120.0, y=0.0)
    beam_path = BeamPath()
    beam_path.connect("A", "B", id="ab")
    return LayoutState([source, target], beam_path, name="ray")


@pytest.fixture
def fixed_length_layout() -> LayoutState:
    """Source and detector joined by a 100-unit fixed-length beam."""
    source = Component(
        id="A",
        type=ComponentType.SOURCE,
        x=100.0,
        y=300.0,
        emission_angle=0.0,
        is_fixed=True,
        is_angle_fixed=True,
    )
    target = Component(id="B", type=ComponentType.DETECTOR, x=250.0, y=300.0,
                       is_angle_fixed=True)
    beam_path = BeamPath()
    beam_path.connect("A", "B", id="ab", is_fixed_length=True, fixed_length=100.0)
    return LayoutState([source, target], beam_path, name="fixed_length")


@pytest.fixture
def frozen_layout() -> LayoutState:
    """Nothing can move or rotate."""
    comps = [
        Component(id="laser", type=ComponentType.SOURCE, x=100.0, y=100.0,
                  is_fixed=True, is_angle_fixed=True),
        Component(id="det", type=ComponentType.DETECTOR, x=300.0, y=100.0,
                  is_fixed=True, is_angle_fixed=True),
    ]
    beam_path = BeamPath()
    beam_path.connect("laser", "det")
    return LayoutState(comps, beam_path)


@pytest.fixture
def keep_out_constraints() -> Constraints:
    return Constraints(
        workspace=Rect(0.0, 0.0, 600.0, 600.0),
        keep_out_zones=[KeepOutZone(Rect(180.0, 280.0, 40.0, 40.0), id="post")],
    )


CHAIN_YAML = """\
name: chain
workspace: {x: 0, y: 0, width: 600, height: 600}
components:
  - {id: laser, type: source, x: 100, y: 300, emission_angle: 0, fixed: true, angle_fixed: true}
  - {id: m1, type: mirror, x: 300, y: 300, angle: 135}
  - {id: det, type: detector, x: 300, y: 100, angle: 90}
beams:
  - {id: b1, source: laser, target: m1}
  - {id: b2, source: m1, target: det, port: reflected}
"""


@pytest.fixture
def chain_yaml(tmp_path) -> Path:
    """The chain layout written as a YAML document."""
    path = tmp_path / "chain.yaml"
    path.write_text(CHAIN_YAML)
    return path
