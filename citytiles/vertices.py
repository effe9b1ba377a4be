"""Vertex housekeeping on merged CityJSON documents.

* ``prune_unreferenced_vertices`` -- drop vertices no boundary references
  (e.g. the leftovers of deduplicated CityObjects).
* ``extract_city_object`` -- a standalone document for one building.
* ``slice_to_referenced_range`` -- trim vertices to the referenced range.

All functions return new documents and leave their input untouched.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List

from .boundaries import parse_boundaries, rewrite_boundaries

logger = logging.getLogger(__name__)


def _iter_geometries(city_objects: Dict[str, Any]):
    for object_id, city_object in city_objects.items():
        for geom in city_object.get("geometry") or []:
            yield object_id, geom


def referenced_indices(city_objects: Dict[str, Any]) -> set:
    """Every vertex index used by any boundary in *city_objects*."""
    used = set()
    for object_id, geom in _iter_geometries(city_objects):
        used.update(parse_boundaries(geom["boundaries"], object_id).iter_indices())
    return used


def _reindex(doc: Dict[str, Any], object_ids: Iterable[str], keep: List[int]) -> Dict[str, Any]:
    """Build a document holding *object_ids* and only the vertices in *keep*."""
    index_map = {old: new for new, old in enumerate(keep)}
    city_objects = {}
    for object_id in object_ids:
        cloned = copy.deepcopy(doc["CityObjects"][object_id])
        for geom in cloned.get("geometry") or []:
            parsed = parse_boundaries(geom["boundaries"], object_id)
            geom["boundaries"] = rewrite_boundaries(parsed, index_map, object_id).to_json()
        city_objects[object_id] = cloned

    result = {k: v for k, v in doc.items() if k not in ("CityObjects", "vertices")}
    result["CityObjects"] = city_objects
    result["vertices"] = [list(doc["vertices"][i]) for i in keep]
    return result


def prune_unreferenced_vertices(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Remove vertices that no CityObject references, preserving order."""
    keep = sorted(referenced_indices(doc["CityObjects"]))
    result = _reindex(doc, doc["CityObjects"].keys(), keep)
    removed = len(doc["vertices"]) - len(keep)
    logger.info(f"Pruned {removed} unreferenced vertices "
                f"({len(keep)} of {len(doc['vertices'])} kept)")
    return result


def _with_children(city_objects: Dict[str, Any], object_id: str) -> List[str]:
    """*object_id* followed by its descendants (BuildingParts etc.)."""
    ordered = []
    stack = [object_id]
    while stack:
        current = stack.pop()
        if current in ordered or current not in city_objects:
            continue
        ordered.append(current)
        stack.extend(reversed(city_objects[current].get("children") or []))
    return ordered


def extract_city_object(doc: Dict[str, Any], object_id: str) -> Dict[str, Any]:
    """Return a document containing only *object_id*, its children and their vertices.

    Raises ``KeyError`` when the object is not present.
    """
    if object_id not in doc["CityObjects"]:
        raise KeyError(f"CityObject {object_id!r} not found")

    object_ids = _with_children(doc["CityObjects"], object_id)
    subset = {oid: doc["CityObjects"][oid] for oid in object_ids}
    keep = sorted(referenced_indices(subset))
    result = _reindex(doc, object_ids, keep)
    if "parents" in result["CityObjects"][object_id]:
        # The parent is not part of the extract
        del result["CityObjects"][object_id]["parents"]

    logger.info(f"Extracted {object_id} ({len(object_ids)} objects): "
                f"{len(keep)} of {len(doc['vertices'])} vertices")
    return result


def slice_to_referenced_range(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Trim vertices to ``[min, max]`` referenced and shift indices down by ``min``.

    Unlike pruning, unreferenced vertices inside the range are kept.
    """
    used = referenced_indices(doc["CityObjects"])
    if not used:
        result = copy.deepcopy(doc)
        result["vertices"] = []
        return result
    low, high = min(used), max(used)
    return _reindex(doc, doc["CityObjects"].keys(), list(range(low, high + 1)))
