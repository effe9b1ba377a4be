import json

import pytest
import requests

from citytiles import models

BASE_QUERY = "https://api.example.test/collections/pand/items"
TRANSFORM = {"scale": [0.001, 0.001, 0.001], "translate": [125000.0, 497000.0, 0.0]}


def make_response(url, status=200, body=None, content=None):
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.reason = "OK" if status < 400 else "Internal Server Error"
    response._content = content if content is not None else json.dumps(body).encode()
    response.encoding = "utf-8"
    return response


class FakeSession:
    """Stands in for requests.Session; replies come from a list or a callable."""

    def __init__(self, replies):
        self.replies = replies
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if callable(self.replies):
            reply = self.replies(url, params, len(self.calls))
        else:
            reply = self.replies[len(self.calls) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


def cube_vertices(x0=0):
    return [[x0, 0, 0], [x0 + 1, 0, 0], [x0 + 1, 1, 0], [x0, 1, 0],
            [x0, 0, 1], [x0 + 1, 0, 1], [x0 + 1, 1, 1], [x0, 1, 1]]


def building(object_id, x0=0, **extra):
    """A one-building CityJSONFeature with a Solid over 8 local vertices."""
    city_object = {
        "type": "Building",
        "attributes": {"source": f"tile-{x0}"},
        "geometry": [{
            "type": "Solid",
            "lod": "2.2",
            "boundaries": [[[[0, 1, 2, 3]], [[4, 5, 6, 7]], [[0, 1, 5, 4]]]],
        }],
    }
    city_object.update(extra)
    return {
        "id": object_id,
        "type": "CityJSONFeature",
        "CityObjects": {object_id: city_object},
        "vertices": cube_vertices(x0),
    }


def page(features, next_href=None, transform=TRANSFORM, links=True):
    body = {
        "type": "FeatureCollection",
        "features": features,
        "metadata": {"transform": transform, "referenceSystem": "https://www.opengis.net/def/crs/EPSG/0/7415"},
        "version": "2.0",
        "numberMatched": 3,
        "numberReturned": len(features),
    }
    if links:
        body["links"] = [{"href": next_href, "rel": "next"}] if next_href else []
    return body


@pytest.fixture
def output_dir(tmp_path, monkeypatch):
    out = tmp_path / "output"
    monkeypatch.setattr(models, "OUTPUT_DIR", out)
    monkeypatch.setattr(models, "MERGED_CACHE_DIR", tmp_path / "cache")
    return out


class FakeGeodetic:
    """Projects every coordinate to a fixed RD point."""

    def __init__(self, x=125000.0, y=497000.0):
        self.x, self.y = x, y
        self.calls = []

    async def lat_long_to_planar(self, lat, lon):
        self.calls.append((lat, lon))
        return self.x, self.y
