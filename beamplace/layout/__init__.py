"""Layout model: components, beam graph, constraints and file loading."""

from .abstraction import (
    BeamPath,
    BeamSegment,
    Component,
    ComponentType,
    Constraints,
    KeepOutZone,
    LayoutState,
    MountZone,
    Port,
    Rect,
)
from .loader import layout_from_dict, layout_to_dict, load_layout, save_layout

__all__ = [
    "BeamPath",
    "BeamSegment",
    "Component",
    "ComponentType",
    "Constraints",
    "KeepOutZone",
    "LayoutState",
    "MountZone",
    "Port",
    "Rect",
    "layout_from_dict",
    "layout_to_dict",
    "load_layout",
    "save_layout",
]
