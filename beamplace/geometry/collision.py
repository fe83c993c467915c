"""
Collision helpers for beam segments.

Beams are modelled as straight lines between component centres. These
helpers answer whether such a line crosses an obstacle:

- axis-aligned boxes (keep-out zones, mount zones) via Liang-Barsky
  parametric clipping
- oriented rectangles (component bodies) via segment/segment tests
  against each polygon edge, with point-in-polygon as a fallback for
  lines that sit entirely inside the body

Boxes are ``(min_x, min_y, max_x, max_y)`` tuples, matching
``Component.get_bounding_box()``.
"""

from typing import Sequence, Tuple

Point = Tuple[float, float]
Box = Tuple[float, float, float, float]

_EPS = 1e-9


def boxes_overlap(a: Box, b: Box) -> bool:
    """Inclusive overlap test for two axis-aligned boxes (touching counts)."""
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def box_inside(inner: Box, outer: Box) -> bool:
    """True if ``inner`` lies completely within ``outer``."""
    return (inner[0] >= outer[0] and inner[1] >= outer[1] and
            inner[2] <= outer[2] and inner[3] <= outer[3])


def line_intersects_box(p1: Point, p2: Point, box: Box) -> bool:
    """Liang-Barsky clipping of segment p1-p2 against an axis-aligned box.

    Handles axis-parallel segments: when a direction component is zero the
    segment only intersects if it lies within the slab on that axis.
    """
    x1, y1 = p1
    dx = p2[0] - x1
    dy = p2[1] - y1
    min_x, min_y, max_x, max_y = box

    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x1 - min_x), (dx, max_x - x1),
                 (-dy, y1 - min_y), (dy, max_y - y1)):
        if abs(p) < _EPS:
            if q < 0:
                return False
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return False
            if t > t0:
                t0 = t
        else:
            if t < t0:
                return False
            if t < t1:
                t1 = t
    return t0 <= t1


def _orientation(a: Point, b: Point, c: Point) -> int:
    """0 collinear, 1 clockwise, 2 counter-clockwise."""
    value = (b[1] - a[1]) * (c[0] - b[0]) - (b[0] - a[0]) * (c[1] - b[1])
    if abs(value) < _EPS:
        return 0
    return 1 if value > 0 else 2


def _on_segment(a: Point, b: Point, c: Point) -> bool:
    """For collinear a, b, c: does b lie on segment a-c?"""
    return (min(a[0], c[0]) - _EPS <= b[0] <= max(a[0], c[0]) + _EPS and
            min(a[1], c[1]) - _EPS <= b[1] <= max(a[1], c[1]) + _EPS)


def segments_intersect(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    """Check whether segment p1-p2 intersects segment p3-p4."""
    o1 = _orientation(p1, p2, p3)
    o2 = _orientation(p1, p2, p4)
    o3 = _orientation(p3, p4, p1)
    o4 = _orientation(p3, p4, p2)

    if o1 != o2 and o3 != o4:
        return True

    # Collinear overlap cases
    if o1 == 0 and _on_segment(p1, p3, p2):
        return True
    if o2 == 0 and _on_segment(p1, p4, p2):
        return True
    if o3 == 0 and _on_segment(p3, p1, p4):
        return True
    if o4 == 0 and _on_segment(p3, p2, p4):
        return True
    return False


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Ray-casting point-in-polygon test."""
    x, y = point
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def line_intersects_polygon(p1: Point, p2: Point, polygon: Sequence[Point]) -> bool:
    """Check whether segment p1-p2 touches a convex polygon.

    Tests every edge, then falls back to containment of either endpoint so
    that a line completely enclosed by the polygon is still reported.
    """
    n = len(polygon)
    if n < 2:
        return False
    for i in range(n):
        if segments_intersect(p1, p2, polygon[i], polygon[(i + 1) % n]):
            return True
    return point_in_polygon(p1, polygon) or point_in_polygon(p2, polygon)
