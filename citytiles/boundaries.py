"""Nested CityJSON boundary structures and vertex-index rewriting.

CityJSON ``boundaries`` are arrays nested to a depth that depends on the
geometry type (MultiSurface: surfaces -> rings -> indices, Solid: shells ->
surfaces -> rings -> indices, ...).  Raw JSON is parsed once into a tagged
variant:

* ``Leaf``   -- a sequence of vertex indices (a ring, or a point list)
* ``Nested`` -- a sequence of child ``Leaf``/``Nested`` nodes
"""

from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Tuple, Union

from .errors import DanglingVertexReference, MalformedGeometry


@dataclass(frozen=True)
class Leaf:
    indices: Tuple[int, ...]

    def to_json(self) -> list:
        return list(self.indices)

    def iter_indices(self) -> Iterator[int]:
        return iter(self.indices)


@dataclass(frozen=True)
class Nested:
    children: Tuple["Boundaries", ...]

    def to_json(self) -> list:
        return [child.to_json() for child in self.children]

    def iter_indices(self) -> Iterator[int]:
        for child in self.children:
            yield from child.iter_indices()


Boundaries = Union[Leaf, Nested]


def _is_index(value) -> bool:
    # bool is an int subclass; true/false are never vertex indices
    return isinstance(value, int) and not isinstance(value, bool)


def parse_boundaries(raw, object_id: Optional[str] = None) -> Boundaries:
    """Parse a raw JSON boundary array into ``Leaf``/``Nested`` nodes."""
    if not isinstance(raw, list):
        raise MalformedGeometry(object_id, f"boundaries must be an array, got {type(raw).__name__}")
    if not raw:
        return Nested(())

    if all(_is_index(v) for v in raw):
        if any(v < 0 for v in raw):
            raise MalformedGeometry(object_id, f"negative vertex index in {raw}")
        return Leaf(tuple(raw))

    if all(isinstance(v, list) for v in raw):
        return Nested(tuple(parse_boundaries(child, object_id) for child in raw))

    for value in raw:
        if not (_is_index(value) or isinstance(value, list)):
            raise MalformedGeometry(object_id, f"non-integer vertex reference {value!r}")
    raise MalformedGeometry(object_id, "array mixes vertex indices and nested arrays")


def rewrite_boundaries(boundaries: Boundaries, index_map: Mapping[int, int],
                       object_id: Optional[str] = None) -> Boundaries:
    """Return a copy of *boundaries* with every index mapped through *index_map*.

    Raises ``DanglingVertexReference`` for an index the map does not cover.
    """
    if isinstance(boundaries, Leaf):
        remapped = []
        for index in boundaries.indices:
            try:
                remapped.append(index_map[index])
            except KeyError:
                raise DanglingVertexReference(object_id, index) from None
        return Leaf(tuple(remapped))

    return Nested(tuple(rewrite_boundaries(child, index_map, object_id)
                        for child in boundaries.children))


class VertexIndexMap(Mapping):
    """Local index ``i`` -> unified index ``offset + i`` for ``0 <= i < count``."""

    def __init__(self, offset: int, count: int):
        self.offset = offset
        self.count = count

    def __getitem__(self, index: int) -> int:
        if not _is_index(index) or not 0 <= index < self.count:
            raise KeyError(index)
        return self.offset + index

    def __iter__(self):
        return iter(range(self.count))

    def __len__(self) -> int:
        return self.count
