"""
BeamPlace - Optical Table Layout Optimizer

Places lasers, mirrors, beam splitters and detectors on a breadboard so
that every beam keeps its physically expected path while the setup stays
compact and balanced over its mounting zone.
"""

__version__ = "0.1.0"

from .layout.abstraction import BeamPath, BeamSegment, Component, ComponentType, LayoutState
from .layout.loader import load_layout, save_layout
from .placement.cost import CostBreakdown, CostWeights, evaluate
from .placement.annealer import BeamLayoutOptimizer, OptimizerConfig

__all__ = [
    "BeamPath",
    "BeamSegment",
    "Component",
    "ComponentType",
    "LayoutState",
    "load_layout",
    "save_layout",
    "CostBreakdown",
    "CostWeights",
    "evaluate",
    "BeamLayoutOptimizer",
    "OptimizerConfig",
]
