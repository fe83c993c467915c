"""
Layout Abstraction Layer

Data model shared by the cost function, the optimizer and the CLI:
components placed on an optical table, the directed beam-segment graph
connecting them, and the workspace constraints.

The LayoutState owns every Component in a single id -> Component map.
Everything else (beam segments, optimizer snapshots, trial overlays)
refers to components by id only.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple
import itertools
import math

from ..geometry.primitives import normalize_angle, valid_angles_for_type

Box = Tuple[float, float, float, float]
Point = Tuple[float, float]


class ComponentType(Enum):
    """Optical component kinds."""
    SOURCE = "source"
    MIRROR = "mirror"
    BEAM_SPLITTER = "beam_splitter"
    LENS = "lens"
    WAVEPLATE = "waveplate"
    FILTER = "filter"
    DETECTOR = "detector"


class Port(Enum):
    """Beam exit ports on a component."""
    OUTPUT = "output"
    REFLECTED = "reflected"
    TRANSMITTED = "transmitted"


@dataclass(frozen=True)
class ComponentDefaults:
    """Per-type default geometry and mass."""
    width: float
    height: float
    mass: float
    mount_padding: float


COMPONENT_DEFAULTS: Dict[ComponentType, ComponentDefaults] = {
    ComponentType.SOURCE: ComponentDefaults(40.0, 20.0, 200.0, 15.0),
    ComponentType.MIRROR: ComponentDefaults(25.0, 5.0, 120.0, 10.0),
    ComponentType.BEAM_SPLITTER: ComponentDefaults(25.0, 25.0, 85.0, 12.0),
    ComponentType.LENS: ComponentDefaults(8.0, 30.0, 60.0, 8.0),
    ComponentType.WAVEPLATE: ComponentDefaults(20.0, 20.0, 40.0, 10.0),
    ComponentType.FILTER: ComponentDefaults(20.0, 20.0, 30.0, 8.0),
    ComponentType.DETECTOR: ComponentDefaults(20.0, 20.0, 150.0, 12.0),
}

_NAME_PREFIX = {
    ComponentType.SOURCE: "S",
    ComponentType.MIRROR: "M",
    ComponentType.BEAM_SPLITTER: "BS",
    ComponentType.LENS: "L",
    ComponentType.WAVEPLATE: "WP",
    ComponentType.FILTER: "F",
    ComponentType.DETECTOR: "D",
}


@dataclass
class MountZone:
    """Clearance footprint around a component's physical mount.

    The zone is the component's axis-aligned bounding box, re-centred by
    (offset_x, offset_y) and grown by padding on each side.
    """
    enabled: bool = False
    padding_x: float = 10.0
    padding_y: float = 10.0
    offset_x: float = 0.0
    offset_y: float = 0.0


@dataclass
class Component:
    """A placeable optical component."""
    id: str
    type: ComponentType = ComponentType.MIRROR
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    angle: float = 0.0  # degrees, [0, 360)

    # Body footprint (relative to centre, before rotation)
    width: Optional[float] = None
    height: Optional[float] = None
    mass: Optional[float] = None

    # Sources only: beam launch direction (degrees)
    emission_angle: Optional[float] = None

    # Placement freedom
    is_fixed: bool = False
    is_angle_fixed: bool = False
    snap_to_grid: bool = True

    mount_zone: MountZone = field(default_factory=MountZone)

    # Orientation options
    valid_angles: Optional[Tuple[float, ...]] = None
    allow_any_angle: bool = False
    is_shallow_angle: bool = False
    shallow_angle: float = 5.0

    def __post_init__(self):
        if not isinstance(self.type, ComponentType):
            self.type = ComponentType(self.type)
        defaults = COMPONENT_DEFAULTS[self.type]
        if self.width is None:
            self.width = defaults.width
        if self.height is None:
            self.height = defaults.height
        if self.mass is None:
            self.mass = defaults.mass
        if not self.name:
            self.name = f"{_NAME_PREFIX[self.type]}_{self.id}"
        self.angle = normalize_angle(self.angle)
        if self.valid_angles is not None:
            self.valid_angles = tuple(normalize_angle(a) for a in self.valid_angles)

    @property
    def type_name(self) -> str:
        return self.type.value

    @property
    def position(self) -> Point:
        return (self.x, self.y)

    @position.setter
    def position(self, value: Point):
        self.x, self.y = float(value[0]), float(value[1])

    @property
    def size(self) -> float:
        """Characteristic size used for centre-to-centre spacing checks."""
        return max(self.width, self.height)

    def corners(self, x: Optional[float] = None, y: Optional[float] = None,
                angle: Optional[float] = None) -> List[Point]:
        """Corners of the oriented body rectangle.

        Pose arguments default to the component's own pose; passing them
        lets callers score a trial pose without mutating the component.
        """
        if x is None:
            x = self.x
        if y is None:
            y = self.y
        if angle is None:
            angle = self.angle

        hw, hh = self.width / 2, self.height / 2
        rad = math.radians(angle)
        cos_r, sin_r = math.cos(rad), math.sin(rad)
        return [
            (x + cx * cos_r - cy * sin_r, y + cx * sin_r + cy * cos_r)
            for cx, cy in ((-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh))
        ]

    def get_bounding_box(self, x: Optional[float] = None, y: Optional[float] = None,
                         angle: Optional[float] = None) -> Box:
        """
        Get axis-aligned bounding box of the rotated body.

        Returns:
            (min_x, min_y, max_x, max_y) in absolute coordinates
        """
        pts = self.corners(x, y, angle)
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return (min(xs), min(ys), max(xs), max(ys))

    def get_mount_zone_bounds(self, x: Optional[float] = None, y: Optional[float] = None,
                              angle: Optional[float] = None) -> Optional[Box]:
        """Mount zone box, or None when the zone is disabled."""
        if not self.mount_zone.enabled:
            return None
        min_x, min_y, max_x, max_y = self.get_bounding_box(x, y, angle)
        cx = (min_x + max_x) / 2 + self.mount_zone.offset_x
        cy = (min_y + max_y) / 2 + self.mount_zone.offset_y
        half_w = (max_x - min_x) / 2 + self.mount_zone.padding_x
        half_h = (max_y - min_y) / 2 + self.mount_zone.padding_y
        return (cx - half_w, cy - half_h, cx + half_w, cy + half_h)

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point lies inside the rotated body."""
        dx = px - self.x
        dy = py - self.y
        rad = math.radians(-self.angle)
        cos_r, sin_r = math.cos(rad), math.sin(rad)
        local_x = dx * cos_r - dy * sin_r
        local_y = dx * sin_r + dy * cos_r
        return abs(local_x) <= self.width / 2 and abs(local_y) <= self.height / 2

    def get_valid_angles(self) -> Tuple[float, ...]:
        """Orientations this component may be rotated to."""
        if self.valid_angles is not None:
            return self.valid_angles
        return valid_angles_for_type(
            self.type_name,
            is_shallow_angle=self.is_shallow_angle,
            shallow_angle=self.shallow_angle,
            allow_any_angle=self.allow_any_angle,
        )

    def distance_to(self, other: 'Component') -> float:
        """Centre-to-centre distance to another component."""
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass
class BeamSegment:
    """Directed beam from one component's port to another component."""
    source_id: str
    target_id: str
    source_port: str = Port.OUTPUT.value
    id: str = ""
    is_fixed_length: bool = False
    fixed_length: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.source_port, Port):
            self.source_port = self.source_port.value


class BeamPath:
    """
    Directed graph of beam segments.

    Segments are indexed by id with outgoing/incoming adjacency lists for
    fast traversal. Segments whose endpoints are missing from the layout
    are kept; consumers skip them when they cannot be resolved.
    """

    def __init__(self, segments: Optional[Iterable[BeamSegment]] = None):
        self.segments: Dict[str, BeamSegment] = {}
        self._outgoing: Dict[str, List[str]] = {}
        self._incoming: Dict[str, List[str]] = {}
        self._id_counter = itertools.count(1)
        for segment in segments or ():
            self.add_segment(segment)

    def __len__(self) -> int:
        return len(self.segments)

    def _new_segment_id(self) -> str:
        while True:
            candidate = f"seg_{next(self._id_counter)}"
            if candidate not in self.segments:
                return candidate

    def add_segment(self, segment: BeamSegment) -> BeamSegment:
        """Add a segment.

        A segment without an id gets one that is unused in this path. A
        segment with an explicit id replaces any segment with the same id.
        """
        if not segment.id:
            segment.id = self._new_segment_id()
        elif segment.id in self.segments:
            self.remove_segment(segment.id)
        self.segments[segment.id] = segment
        self._outgoing.setdefault(segment.source_id, []).append(segment.id)
        self._incoming.setdefault(segment.target_id, []).append(segment.id)
        return segment

    def connect(self, source_id: str, target_id: str, port: str = Port.OUTPUT.value,
                **kwargs) -> BeamSegment:
        """Convenience wrapper creating and adding a segment."""
        return self.add_segment(BeamSegment(source_id, target_id, port, **kwargs))

    def remove_segment(self, segment_id: str) -> bool:
        segment = self.segments.pop(segment_id, None)
        if segment is None:
            return False
        out_list = self._outgoing.get(segment.source_id)
        if out_list and segment_id in out_list:
            out_list.remove(segment_id)
        in_list = self._incoming.get(segment.target_id)
        if in_list and segment_id in in_list:
            in_list.remove(segment_id)
        return True

    def remove_segments_for_component(self, component_id: str) -> int:
        """Remove every segment touching a component; returns the count."""
        doomed = [
            seg_id for seg_id, seg in self.segments.items()
            if seg.source_id == component_id or seg.target_id == component_id
        ]
        for seg_id in doomed:
            self.remove_segment(seg_id)
        self._outgoing.pop(component_id, None)
        self._incoming.pop(component_id, None)
        return len(doomed)

    def get_segment(self, segment_id: str) -> Optional[BeamSegment]:
        return self.segments.get(segment_id)

    def get_all_segments(self) -> List[BeamSegment]:
        return list(self.segments.values())

    def get_outgoing_segments(self, component_id: str) -> List[BeamSegment]:
        return [self.segments[s] for s in self._outgoing.get(component_id, ())
                if s in self.segments]

    def get_incoming_segments(self, component_id: str) -> List[BeamSegment]:
        return [self.segments[s] for s in self._incoming.get(component_id, ())
                if s in self.segments]

    def get_fixed_length_segments(self) -> List[BeamSegment]:
        return [s for s in self.segments.values() if s.is_fixed_length]

    def connection_exists(self, source_id: str, target_id: str,
                          source_port: Optional[str] = None) -> bool:
        return any(
            seg.target_id == target_id and
            (source_port is None or seg.source_port == source_port)
            for seg in self.get_outgoing_segments(source_id)
        )

    def get_downstream(self, component_id: str) -> List[str]:
        """All component ids reachable from component_id, in DFS order.

        Walks with an explicit stack and a visited set, so cycles and deep
        chains are safe. The start component is only included if a cycle
        leads back to it.
        """
        order: List[str] = []
        visited: Set[str] = set()
        stack: List[str] = []

        def push_targets(node_id: str):
            # Reverse so the first outgoing segment is explored first
            for segment in reversed(self.get_outgoing_segments(node_id)):
                if segment.target_id not in visited:
                    visited.add(segment.target_id)
                    stack.append(segment.target_id)

        push_targets(component_id)
        while stack:
            current = stack.pop()
            order.append(current)
            push_targets(current)
        return order

    def trace_from_source(self, source_id: str, max_depth: int = 50) -> List[List[str]]:
        """Every segment-id path from source_id to a terminal component.

        A path stops when it would revisit a component already on it.
        """
        paths: List[List[str]] = []
        # (component, path of segment ids, components on the path)
        stack: List[Tuple[str, List[str], Tuple[str, ...]]] = [(source_id, [], (source_id,))]
        while stack:
            current, path, on_path = stack.pop()
            outgoing = self.get_outgoing_segments(current)
            extended = False
            if len(path) < max_depth:
                for segment in reversed(outgoing):
                    if segment.target_id in on_path:
                        continue
                    extended = True
                    stack.append((segment.target_id, path + [segment.id],
                                  on_path + (segment.target_id,)))
            if not extended and path:
                paths.append(path)
        return paths

    def clear(self):
        self.segments.clear()
        self._outgoing.clear()
        self._incoming.clear()


@dataclass
class Rect:
    """Axis-aligned rectangle (workspace, keep-out zone, mounting zone)."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def bounds(self) -> Box:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, px: float, py: float) -> bool:
        return (self.x <= px <= self.x + self.width and
                self.y <= py <= self.y + self.height)


@dataclass
class KeepOutZone:
    """Region that components, mount zones and beams must stay out of."""
    bounds: Rect
    id: str = ""
    name: str = ""
    is_active: bool = True


@dataclass
class Constraints:
    """Workspace-level placement constraints."""
    workspace: Rect = field(default_factory=lambda: Rect(0.0, 0.0, 600.0, 600.0))
    keep_out_zones: List[KeepOutZone] = field(default_factory=list)
    mounting_zone: Optional[Rect] = None

    def active_keep_out_zones(self) -> List[KeepOutZone]:
        return [zone for zone in self.keep_out_zones if zone.is_active]


class LayoutState:
    """
    Complete layout: components, beam graph and constraints.

    ``components`` is the single owner of Component objects. While an
    optimization run is active, the optimizer is the only code that
    writes component positions and angles.
    """

    def __init__(self, components: Optional[Iterable[Component]] = None,
                 beam_path: Optional[BeamPath] = None,
                 constraints: Optional[Constraints] = None,
                 name: str = "layout"):
        self.name = name
        self.components: Dict[str, Component] = {}
        self.beam_path = beam_path if beam_path is not None else BeamPath()
        self.constraints = constraints if constraints is not None else Constraints()
        for component in components or ():
            self.add_component(component)

    def add_component(self, component: Component) -> Component:
        self.components[component.id] = component
        return component

    def remove_component(self, component_id: str) -> Optional[Component]:
        """Remove a component together with every beam touching it."""
        component = self.components.pop(component_id, None)
        if component is not None:
            self.beam_path.remove_segments_for_component(component_id)
        return component

    def get_component(self, component_id: str) -> Optional[Component]:
        return self.components.get(component_id)

    def component_map(self) -> Dict[str, Component]:
        """Shallow copy of the id -> Component map."""
        return dict(self.components)

    @property
    def movable_ids(self) -> List[str]:
        """Ids of components whose position may change."""
        return [cid for cid, comp in self.components.items() if not comp.is_fixed]

    @property
    def angle_movable_ids(self) -> List[str]:
        """Ids of components whose angle may change."""
        return [cid for cid, comp in self.components.items() if not comp.is_angle_fixed]

    def sources(self) -> List[Component]:
        return [c for c in self.components.values() if c.type is ComponentType.SOURCE]

    def positions(self) -> Dict[str, Point]:
        return {cid: comp.position for cid, comp in self.components.items()}

    def angles(self) -> Dict[str, float]:
        return {cid: comp.angle for cid, comp in self.components.items()}
