"""citytiles package: merged 3D BAG city models from paginated CityJSON tiles.

Import constants FIRST so environment overrides and logging are set up
before any other module reads them.
"""

from citytiles import constants as _constants  # noqa: F401

from citytiles.builder import CityModelBuilder
from citytiles.geodetic import GeodeticTransform, get_geodetic_transform
from citytiles.merge import merge_features
from citytiles.models import BoundingBox, FeatureCollection, Transform
