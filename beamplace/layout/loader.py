"""
Layout Documents

Reads and writes LayoutState as YAML or JSON (chosen by file suffix).
A document looks like:

    name: michelson
    workspace: {x: 0, y: 0, width: 600, height: 600}
    mounting_zone: {x: 200, y: 200, width: 200, height: 200}
    keep_out_zones:
      - {id: post, x: 280, y: 0, width: 40, height: 60}
    components:
      - {id: laser, type: source, x: 75, y: 300, emission_angle: 0, fixed: true}
      - {id: bs, type: beam_splitter, x: 200, y: 300, angle: 135}
      - {id: m1, type: mirror, x: 200, y: 150, angle: 135,
         mount_zone: {enabled: true, padding_x: 8}}
    beams:
      - {source: laser, target: bs}
      - {source: bs, target: m1, port: reflected, fixed_length: 150}

Unknown keys are ignored. Structural problems (missing ids, duplicate
ids, unknown component types or ports) raise ValueError with the
offending entry. Beams that reference a component the document does not
define are kept and logged; scoring and moves skip them.
"""

import itertools
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml

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

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def _rect_from_dict(data: Dict[str, Any], what: str) -> Rect:
    try:
        return Rect(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data["width"]),
            height=float(data["height"]),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid {what} rectangle {data!r}: {e}") from e


def _rect_to_dict(rect: Rect) -> Dict[str, float]:
    return {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _component_from_dict(data: Dict[str, Any]) -> Component:
    if not isinstance(data, dict) or "id" not in data:
        raise ValueError(f"Component without id: {data!r}")
    comp_id = str(data["id"])
    try:
        comp_type = ComponentType(data.get("type", ComponentType.MIRROR.value))
    except ValueError:
        valid = ", ".join(t.value for t in ComponentType)
        raise ValueError(
            f"Unknown component type {data.get('type')!r} for {comp_id} "
            f"(expected one of: {valid})"
        ) from None

    mount = data.get("mount_zone") or {}
    valid_angles = data.get("valid_angles")
    emission = data.get("emission_angle")

    try:
        return Component(
            id=comp_id,
            type=comp_type,
            name=str(data.get("name", "")),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            angle=float(data.get("angle", 0.0)),
            width=_optional_float(data.get("width")),
            height=_optional_float(data.get("height")),
            mass=_optional_float(data.get("mass")),
            emission_angle=_optional_float(emission),
            is_fixed=bool(data.get("fixed", False)),
            is_angle_fixed=bool(data.get("angle_fixed", False)),
            snap_to_grid=bool(data.get("snap_to_grid", True)),
            mount_zone=MountZone(
                enabled=bool(mount.get("enabled", False)),
                padding_x=float(mount.get("padding_x", 10.0)),
                padding_y=float(mount.get("padding_y", 10.0)),
                offset_x=float(mount.get("offset_x", 0.0)),
                offset_y=float(mount.get("offset_y", 0.0)),
            ),
            valid_angles=tuple(float(a) for a in valid_angles) if valid_angles else None,
            allow_any_angle=bool(data.get("allow_any_angle", False)),
            is_shallow_angle=bool(data.get("shallow_angle_mode", False)),
            shallow_angle=float(data.get("shallow_angle", 5.0)),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid component {comp_id}: {e}") from e


def _component_to_dict(comp: Component) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": comp.id,
        "type": comp.type_name,
        "name": comp.name,
        "x": comp.x,
        "y": comp.y,
        "angle": comp.angle,
        "width": comp.width,
        "height": comp.height,
        "mass": comp.mass,
    }
    if comp.emission_angle is not None:
        data["emission_angle"] = comp.emission_angle
    if comp.is_fixed:
        data["fixed"] = True
    if comp.is_angle_fixed:
        data["angle_fixed"] = True
    if not comp.snap_to_grid:
        data["snap_to_grid"] = False
    if comp.mount_zone.enabled:
        data["mount_zone"] = {
            "enabled": True,
            "padding_x": comp.mount_zone.padding_x,
            "padding_y": comp.mount_zone.padding_y,
            "offset_x": comp.mount_zone.offset_x,
            "offset_y": comp.mount_zone.offset_y,
        }
    if comp.valid_angles is not None:
        data["valid_angles"] = list(comp.valid_angles)
    if comp.allow_any_angle:
        data["allow_any_angle"] = True
    if comp.is_shallow_angle:
        data["shallow_angle_mode"] = True
        data["shallow_angle"] = comp.shallow_angle
    return data


def _segment_from_dict(data: Dict[str, Any], known_ids) -> BeamSegment:
    if not isinstance(data, dict):
        raise ValueError(f"Beam entry must be a mapping: {data!r}")
    try:
        source_id = str(data["source"])
        target_id = str(data["target"])
    except KeyError as e:
        raise ValueError(f"Beam missing {e.args[0]!r}: {data!r}") from None
    for end in (source_id, target_id):
        if end not in known_ids:
            logger.warning("Beam %s -> %s references unknown component %s",
                           source_id, target_id, end)

    port = data.get("port", Port.OUTPUT.value)
    if port not in {p.value for p in Port}:
        raise ValueError(f"Unknown beam port {port!r}: {data!r}")

    try:
        fixed_length = _optional_float(data.get("fixed_length"))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid fixed_length in beam {data!r}: {e}") from e
    return BeamSegment(
        source_id=source_id,
        target_id=target_id,
        source_port=port,
        id=str(data["id"]) if data.get("id") is not None else "",
        is_fixed_length=fixed_length is not None,
        fixed_length=fixed_length,
    )


def layout_from_dict(data: Dict[str, Any]) -> LayoutState:
    """Build a LayoutState from a parsed document."""
    if not isinstance(data, dict):
        raise ValueError("Layout document must be a mapping")

    constraints = Constraints()
    if "workspace" in data:
        constraints.workspace = _rect_from_dict(data["workspace"], "workspace")
    if data.get("mounting_zone"):
        constraints.mounting_zone = _rect_from_dict(data["mounting_zone"], "mounting zone")
    for i, zone in enumerate(data.get("keep_out_zones") or []):
        constraints.keep_out_zones.append(KeepOutZone(
            bounds=_rect_from_dict(zone, "keep-out zone"),
            id=str(zone.get("id", f"keepout_{i + 1}")),
            name=str(zone.get("name", "")),
            is_active=bool(zone.get("active", True)),
        ))

    layout = LayoutState(constraints=constraints, name=str(data.get("name", "layout")))
    for entry in data.get("components") or []:
        component = _component_from_dict(entry)
        if component.id in layout.components:
            raise ValueError(f"Duplicate component id: {component.id}")
        layout.add_component(component)

    segments = [_segment_from_dict(entry, layout.components)
                for entry in data.get("beams") or []]
    taken: Set[str] = set()
    for segment in segments:
        if segment.id in taken:
            raise ValueError(f"Duplicate beam id: {segment.id}")
        if segment.id:
            taken.add(segment.id)
    # Unnamed beams must not take an id that a later beam declares
    counter = itertools.count(1)
    for segment in segments:
        if not segment.id:
            segment.id = next(seg_id for seg_id in (f"seg_{n}" for n in counter)
                              if seg_id not in taken)
            taken.add(segment.id)
    beam_path = BeamPath(segments)
    layout.beam_path = beam_path

    logger.debug("Loaded layout %s: %d components, %d beams",
                 layout.name, len(layout.components), len(beam_path))
    return layout


def layout_to_dict(layout: LayoutState) -> Dict[str, Any]:
    """Serialize a LayoutState to plain dicts/lists."""
    constraints = layout.constraints
    beams: List[Dict[str, Any]] = []
    for seg in layout.beam_path.get_all_segments():
        beam = {"id": seg.id, "source": seg.source_id, "target": seg.target_id,
                "port": seg.source_port}
        if seg.is_fixed_length and seg.fixed_length is not None:
            beam["fixed_length"] = seg.fixed_length
        beams.append(beam)

    data: Dict[str, Any] = {
        "name": layout.name,
        "workspace": _rect_to_dict(constraints.workspace),
    }
    if constraints.mounting_zone is not None:
        data["mounting_zone"] = _rect_to_dict(constraints.mounting_zone)
    if constraints.keep_out_zones:
        data["keep_out_zones"] = [
            dict(_rect_to_dict(zone.bounds), id=zone.id, name=zone.name,
                 active=zone.is_active)
            for zone in constraints.keep_out_zones
        ]
    data["components"] = [_component_to_dict(c) for c in layout.components.values()]
    data["beams"] = beams
    return data


def load_layout(path: Union[str, Path]) -> LayoutState:
    """Load a layout document from a .yaml/.yml or .json file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Layout file not found: {path}")

    content = path.read_text()
    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Could not parse {path}: {e}") from e

    return layout_from_dict(data or {})


def save_layout(layout: LayoutState, path: Union[str, Path],
                fmt: Optional[str] = None) -> Path:
    """Write a layout document; format from fmt ('yaml'/'json') or suffix."""
    path = Path(path)
    if fmt is None:
        fmt = "yaml" if path.suffix.lower() in YAML_SUFFIXES else "json"

    data = layout_to_dict(layout)
    if fmt == "yaml":
        path.write_text(yaml.safe_dump(data, sort_keys=False))
    elif fmt == "json":
        path.write_text(json.dumps(data, indent=2) + "\n")
    else:
        raise ValueError(f"Unknown layout format: {fmt}")
    return path
