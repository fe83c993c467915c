"""
Geometry Primitives

Pure angle and vector helpers used by the layout model, the cost function
and the optimizer. Angles are in degrees, measured from the +x axis with
+y pointing down the table (screen coordinates), and are normalized to
[0, 360).

Also holds the small amount of beam physics the optimizer needs: which
orientations each component type accepts and which direction a beam
leaves a component through a given port.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

Point = Tuple[float, float]

# Cardinal beam directions (degrees)
CARDINAL_ANGLES: Tuple[float, ...] = (0.0, 90.0, 180.0, 270.0)

# Angular tolerance for "is this beam on its expected path" checks
ANGLE_TOLERANCE = 5.0

# Default placement grid (table hole pitch)
DEFAULT_GRID_SIZE = 25.0

# Orientations allowed per component type.
# Mirrors/splitters sit diagonally to fold the beam by 90 degrees,
# transmissive optics sit along the beam, detectors accept anything.
VALID_ANGLES_BY_TYPE: Dict[str, Tuple[float, ...]] = {
    "source": (0.0, 90.0, 180.0, 270.0),
    "mirror": (45.0, 135.0),
    "beam_splitter": (45.0, 135.0),
    "lens": (0.0, 90.0, 180.0, 270.0),
    "waveplate": (0.0, 90.0, 180.0, 270.0),
    "filter": (0.0, 90.0, 180.0, 270.0),
    "detector": (0.0, 45.0, 90.0, 135.0, 180.0, 225.0, 270.0, 315.0),
}

# Used when a component opts out of the per-type restriction
ANY_ANGLES: Tuple[float, ...] = tuple(float(a) for a in range(0, 360, 15))

TRANSMISSIVE_TYPES = frozenset({"lens", "waveplate", "filter"})


def normalize_angle(angle: float) -> float:
    """Normalize an angle to the [0, 360) range."""
    angle = math.fmod(angle, 360.0)
    if angle < 0:
        angle += 360.0
    # fmod of tiny negatives can round up to exactly 360
    if angle >= 360.0:
        angle -= 360.0
    return angle


def normalize_angle_diff(angle: float) -> float:
    """Normalize an angle difference to the (-180, 180] range.

    This is the signed shortest rotation that takes one direction to
    another.
    """
    angle = math.fmod(angle, 360.0)
    if angle > 180.0:
        angle -= 360.0
    elif angle <= -180.0:
        angle += 360.0
    return angle


def angle_difference(a: float, b: float) -> float:
    """Absolute angular distance between two directions, in [0, 180]."""
    diff = abs(normalize_angle(a - b))
    return min(diff, 360.0 - diff)


def deg_to_rad(degrees: float) -> float:
    return degrees * math.pi / 180.0


def rad_to_deg(radians: float) -> float:
    return radians * 180.0 / math.pi


def angle_to_vector(angle_deg: float) -> Point:
    """Unit direction vector for an angle in degrees."""
    rad = deg_to_rad(angle_deg)
    return (math.cos(rad), math.sin(rad))


def vector_to_angle(vx: float, vy: float) -> float:
    """Angle of a direction vector in degrees, normalized to [0, 360)."""
    return normalize_angle(rad_to_deg(math.atan2(vy, vx)))


def normalize_vector(vx: float, vy: float) -> Point:
    length = math.hypot(vx, vy)
    if length == 0:
        return (0.0, 0.0)
    return (vx / length, vy / length)


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def beam_direction(source: Point, target: Point) -> Optional[Point]:
    """Unit vector from source to target, or None if the points coincide."""
    dx = target[0] - source[0]
    dy = target[1] - source[1]
    if abs(dx) < 0.001 and abs(dy) < 0.001:
        return None
    return normalize_vector(dx, dy)


def beam_angle(source: Point, target: Point) -> Optional[float]:
    """Direction of the beam from source to target in degrees.

    Returns None for a zero-length segment, which callers treat as
    "cannot evaluate" rather than an error.
    """
    direction = beam_direction(source, target)
    if direction is None:
        return None
    return vector_to_angle(direction[0], direction[1])


def snap_to_grid(position: Point, grid_size: float = DEFAULT_GRID_SIZE) -> Point:
    """Snap a position to the nearest grid intersection (halves round up)."""
    if grid_size <= 0:
        return position
    return (
        math.floor(position[0] / grid_size + 0.5) * grid_size,
        math.floor(position[1] / grid_size + 0.5) * grid_size,
    )


def is_on_grid(position: Point, grid_size: float = DEFAULT_GRID_SIZE,
               tolerance: float = 0.5) -> bool:
    snapped = snap_to_grid(position, grid_size)
    return (abs(position[0] - snapped[0]) <= tolerance and
            abs(position[1] - snapped[1]) <= tolerance)


def rotate_point(point: Point, pivot: Point, angle_deg: float) -> Point:
    """Rotate a point around a pivot by angle_deg degrees."""
    rad = deg_to_rad(angle_deg)
    cos_r, sin_r = math.cos(rad), math.sin(rad)
    dx = point[0] - pivot[0]
    dy = point[1] - pivot[1]
    return (
        pivot[0] + dx * cos_r - dy * sin_r,
        pivot[1] + dx * sin_r + dy * cos_r,
    )


def rotate_vector(vx: float, vy: float, angle_deg: float) -> Point:
    """Rotate a vector by angle_deg degrees.

    Quarter turns are applied exactly so that grid-aligned vectors stay
    grid-aligned.
    """
    quarter = angle_deg / 90.0
    if abs(quarter - round(quarter)) < 1e-9:
        turns = int(round(quarter)) % 4
        if turns == 0:
            return (vx, vy)
        if turns == 1:
            return (-vy, vx)
        if turns == 2:
            return (-vx, -vy)
        return (vy, -vx)
    return rotate_point((vx, vy), (0.0, 0.0), angle_deg)


def valid_angles_for_type(component_type: str,
                          is_shallow_angle: bool = False,
                          shallow_angle: float = 5.0,
                          allow_any_angle: bool = False) -> Tuple[float, ...]:
    """Orientations a component of this type may take."""
    if allow_any_angle:
        return ANY_ANGLES
    if component_type == "beam_splitter" and is_shallow_angle:
        return (
            normalize_angle(shallow_angle),
            normalize_angle(180.0 - shallow_angle),
            normalize_angle(180.0 + shallow_angle),
            normalize_angle(360.0 - shallow_angle),
        )
    return VALID_ANGLES_BY_TYPE.get(component_type, CARDINAL_ANGLES)


def snap_angle_to_valid(angle: float, valid_angles: Sequence[float]) -> float:
    """Snap an angle to the closest entry of valid_angles."""
    if not valid_angles:
        return normalize_angle(angle)
    return min(valid_angles, key=lambda a: angle_difference(angle, a))


def surface_normal(component_angle: float) -> Point:
    """Normal of a reflective surface lying along component_angle."""
    return angle_to_vector(normalize_angle(component_angle + 90.0))


def reflect(direction: Point, normal: Point) -> Point:
    """Reflect a direction about a surface normal: R = D - 2(D.N)N."""
    dx, dy = normalize_vector(*direction)
    nx, ny = normalize_vector(*normal)
    dot = dx * nx + dy * ny
    return normalize_vector(dx - 2 * dot * nx, dy - 2 * dot * ny)


def mirror_reflection(incoming_angle: float, mirror_angle: float) -> float:
    """Outgoing beam angle after reflecting off a mirror at mirror_angle."""
    rx, ry = reflect(angle_to_vector(incoming_angle), surface_normal(mirror_angle))
    return vector_to_angle(rx, ry)


def output_direction(component, incoming_angle: Optional[float],
                     port: str = "reflected") -> Optional[float]:
    """Expected direction of the beam leaving ``component`` through ``port``.

    Args:
        component: Layout component (anything exposing type/angle/
            emission_angle and the beam splitter shallow-angle fields)
        incoming_angle: Direction of the beam arriving at the component,
            ignored for sources
        port: "output", "reflected" or "transmitted"

    Returns:
        Angle in degrees, or None when no beam leaves (detectors) or the
        incoming direction is unknown.
    """
    return output_direction_at(component, component.angle, incoming_angle, port)


def output_direction_at(component, angle: float, incoming_angle: Optional[float],
                        port: str = "reflected") -> Optional[float]:
    """Same as output_direction() but with the component oriented at ``angle``."""
    ctype = component.type_name
    if ctype == "source":
        return source_emission_angle(component, angle)
    if ctype == "detector":
        return None
    if incoming_angle is None:
        return None
    if ctype == "mirror":
        return mirror_reflection(incoming_angle, angle)
    if ctype == "beam_splitter":
        if port == "transmitted":
            return normalize_angle(incoming_angle)
        surface = component.shallow_angle if component.is_shallow_angle else angle
        return mirror_reflection(incoming_angle, surface)
    return normalize_angle(incoming_angle)


def source_emission_angle(component, angle: Optional[float] = None) -> float:
    """Emission direction of a source: explicit emission angle, else its
    orientation snapped to a cardinal direction."""
    if component.emission_angle is not None:
        return normalize_angle(component.emission_angle)
    if angle is None:
        angle = component.angle
    return snap_angle_to_valid(angle, CARDINAL_ANGLES)


def is_target_on_beam_path(source: Point, target: Point, expected_angle: float,
                           tolerance: float = ANGLE_TOLERANCE) -> bool:
    """Check whether target lies along expected_angle as seen from source."""
    actual = beam_angle(source, target)
    if actual is None:
        return False
    return angle_difference(actual, expected_angle) <= tolerance


def allowed_quarter_turns(valid_angles: Sequence[float], original_angle: float,
                          tolerance: float = 1e-6) -> List[float]:
    """Valid angles that differ from original_angle by 0/90/180/270 degrees."""
    allowed = []
    for angle in valid_angles:
        offset = normalize_angle(angle - original_angle)
        for quarter in (0.0, 90.0, 180.0, 270.0, 360.0):
            if abs(offset - quarter) <= tolerance:
                allowed.append(normalize_angle(angle))
                break
    return allowed
