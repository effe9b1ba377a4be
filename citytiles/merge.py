"""Merge paginated CityJSON features into a single CityJSON document."""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict

from .boundaries import VertexIndexMap, parse_boundaries, rewrite_boundaries
from .errors import InconsistentTransform, MalformedGeometry
from .models import FeatureCollection, Transform

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    city_objects: int = 0
    vertices: int = 0
    duplicates_skipped: int = 0
    features_skipped: int = 0


def _remap_geometry(city_object: Dict[str, Any], object_id: str,
                    index_map: VertexIndexMap) -> None:
    """Rewrite every geometry's boundaries of *city_object* in place."""
    geometry = city_object.get("geometry")
    if geometry is None:
        return
    if not isinstance(geometry, list):
        raise MalformedGeometry(object_id, "'geometry' must be an array")

    for geom in geometry:
        if not isinstance(geom, dict):
            raise MalformedGeometry(object_id, "geometry entries must be objects")
        if "boundaries" not in geom:
            raise MalformedGeometry(object_id, f"{geom.get('type', 'geometry')} has no boundaries")
        parsed = parse_boundaries(geom["boundaries"], object_id)
        geom["boundaries"] = rewrite_boundaries(parsed, index_map, object_id).to_json()


def merge_features(collection: FeatureCollection, stats: MergeStats = None) -> Dict[str, Any]:
    """Convert a FeatureCollection into one CityJSON document.

    Vertices of every ingested feature are appended in arrival order and each
    CityObject's boundaries are shifted into the unified vertex list.  When
    the same CityObject id appears in several features (a building straddling
    two tiles), the first copy is kept and later ones are dropped; their
    vertices still land in the unified list, unreferenced.
    """
    if stats is None:
        stats = MergeStats()
    logger.info(f"Starting merge of {len(collection.features)} features")

    output: Dict[str, Any] = {
        "type": "CityJSON",
        "version": collection.version,
        "transform": collection.transform.to_json() if collection.transform else None,
        "CityObjects": {},
        "vertices": [],
    }
    if collection.reference_system:
        output["referenceSystem"] = collection.reference_system

    city_objects = output["CityObjects"]
    vertices = output["vertices"]

    for position, feature in enumerate(collection.features):
        feature_id = feature.get("id", f"#{position}")
        feature_objects = feature.get("CityObjects")
        feature_vertices = feature.get("vertices")
        if feature_objects is None or not feature_vertices:
            logger.debug(f"Skipping feature {feature_id}: no CityObjects or vertices")
            stats.features_skipped += 1
            continue
        if not isinstance(feature_objects, dict):
            raise MalformedGeometry(None, f"feature {feature_id}: 'CityObjects' must be an object")

        if "transform" in feature and collection.transform is not None:
            try:
                own = Transform.from_json(feature["transform"])
            except ValueError as e:
                raise MalformedGeometry(None, f"feature {feature_id}: {e}") from e
            if own is not None and own != collection.transform:
                raise InconsistentTransform(f"feature {feature_id}",
                                            collection.transform, own)

        index_map = VertexIndexMap(offset=len(vertices), count=len(feature_vertices))
        vertices.extend(list(v) for v in feature_vertices)
        stats.vertices += len(feature_vertices)

        for object_id, city_object in feature_objects.items():
            # Keep first occurrence
            if object_id in city_objects:
                stats.duplicates_skipped += 1
                continue

            if not isinstance(city_object, dict):
                raise MalformedGeometry(object_id, "CityObject must be an object")
            cloned = copy.deepcopy(city_object)
            _remap_geometry(cloned, object_id, index_map)
            city_objects[object_id] = cloned
            stats.city_objects += 1

    logger.info(f"Merge completed: {stats.city_objects} CityObjects, "
                f"{stats.vertices} vertices, {stats.duplicates_skipped} duplicate "
                f"objects skipped, {stats.features_skipped} empty features skipped")
    return output
