import asyncio

import pytest
import requests

from citytiles.errors import FetchCancelled, InconsistentTransform, PageFetchFailed
from citytiles.fetch import fetch_all_pages
from citytiles.merge import merge_features
from citytiles.models import BoundingBox

from conftest import BASE_QUERY, FakeSession, building, make_response, page

BBOX = BoundingBox(125000.0, 497000.0, 125100.0, 497100.0)
NEXT_2 = "/collections/pand/items?bbox=125000.0,497000.0,125100.0,497100.0&limit=1&startindex=1"
NEXT_3 = "/collections/pand/items?bbox=125000.0,497000.0,125100.0,497100.0&limit=1&startindex=2"


def _fetch(session, page_limit=10, **kwargs):
    return asyncio.run(fetch_all_pages(BBOX, page_limit, BASE_QUERY,
                                       session=session, page_delay=0, **kwargs))


def test_follows_next_links_until_none_left():
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("building1", 0)], NEXT_2)),
        make_response(BASE_QUERY, body=page([building("building2", 2)], NEXT_3)),
        make_response(BASE_QUERY, body=page([building("building3", 4)])),
    ])

    collection = _fetch(session, timeout=5)

    assert [f["id"] for f in collection.features] == ["building1", "building2", "building3"]
    assert collection.pages == 3
    assert not collection.truncated
    assert collection.version == "2.0"
    assert collection.transform.scale == (0.001, 0.001, 0.001)
    assert session.calls[0] == {
        "url": BASE_QUERY,
        "params": {"bbox": "125000.0,497000.0,125100.0,497100.0", "limit": 100},
        "timeout": 5,
    }
    assert session.calls[1]["url"] == "https://api.example.test" + NEXT_2
    assert session.calls[1]["params"] is None

    doc = merge_features(collection)
    assert len(doc["CityObjects"]) == 3
    assert len(doc["vertices"]) == 24


def test_missing_links_field_stops_cleanly():
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("b1")], NEXT_2)),
        make_response(BASE_QUERY, body=page([building("b2", 2)], links=False)),
    ])

    collection = _fetch(session)

    assert len(collection.features) == 2
    assert len(session.calls) == 2


def test_page_limit_bounds_an_endless_chain():
    def endless(url, params, n):
        return make_response(url, body=page([building(f"b{n}", n)],
                                            f"/collections/pand/items?startindex={n}"))
    session = FakeSession(endless)

    collection = _fetch(session, page_limit=4)

    assert len(session.calls) == 4
    assert len(collection.features) == 4
    assert collection.truncated


def test_next_link_back_to_first_page_terminates():
    first_page_href = ("/collections/pand/items?limit=100"
                       "&bbox=125000.0,497000.0,125100.0,497100.0")
    session = FakeSession(lambda url, params, n: make_response(
        url, body=page([building("b1")], first_page_href)))

    collection = _fetch(session, page_limit=5)

    assert len(session.calls) <= 5
    assert len(session.calls) == 1
    assert len(collection.features) == 1


def test_server_error_mid_sequence_aborts():
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("b1")], NEXT_2)),
        make_response(BASE_QUERY + "?startindex=1", status=500, body={"detail": "boom"}),
    ])

    with pytest.raises(PageFetchFailed) as excinfo:
        _fetch(session)

    assert excinfo.value.page_number == 2
    assert excinfo.value.status_code == 500


def test_timeout_is_a_page_failure():
    session = FakeSession([requests.Timeout("read timed out")])

    with pytest.raises(PageFetchFailed) as excinfo:
        _fetch(session, timeout=0.5)

    assert excinfo.value.page_number == 1
    assert "timed out" in str(excinfo.value)


def test_connection_error_is_a_page_failure():
    session = FakeSession([requests.ConnectionError("refused")])

    with pytest.raises(PageFetchFailed):
        _fetch(session)


def test_invalid_json_is_a_page_failure():
    session = FakeSession([make_response(BASE_QUERY, content=b"<html>busy</html>")])

    with pytest.raises(PageFetchFailed) as excinfo:
        _fetch(session)
    assert excinfo.value.status_code == 200


def test_cancellation_is_checked_between_pages():
    async def run():
        cancel = asyncio.Event()
        session = FakeSession([
            make_response(BASE_QUERY, body=page([building("b1")], NEXT_2)),
            make_response(BASE_QUERY, body=page([building("b2", 2)])),
        ])
        with pytest.raises(FetchCancelled) as excinfo:
            await fetch_all_pages(BBOX, 10, BASE_QUERY, session=session, page_delay=0,
                                  cancel_event=cancel,
                                  progress_callback=lambda n, count: cancel.set())
        return session, excinfo.value

    session, error = asyncio.run(run())

    assert len(session.calls) == 1
    assert error.page_number == 2


def test_pages_with_a_different_transform_are_rejected():
    other = {"scale": [0.01, 0.01, 0.01], "translate": [0.0, 0.0, 0.0]}
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("b1")], NEXT_2)),
        make_response(BASE_QUERY, body=page([building("b2", 2)], transform=other)),
    ])

    with pytest.raises(InconsistentTransform):
        _fetch(session)


def test_progress_callback_sees_running_totals():
    seen = []
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("b1"), building("b2", 2)], NEXT_2)),
        make_response(BASE_QUERY, body=page([building("b3", 4)])),
    ])

    _fetch(session, progress_callback=lambda n, count: seen.append((n, count)))

    assert seen == [(1, 2), (2, 3)]


def test_page_with_incomplete_transform_is_a_page_failure():
    session = FakeSession([
        make_response(BASE_QUERY, body=page([building("b1")], transform={"scale": [1, 1, 1]})),
    ])

    with pytest.raises(PageFetchFailed) as excinfo:
        _fetch(session)

    assert excinfo.value.page_number == 1
    assert "metadata.transform" in str(excinfo.value)


def test_transform_first_seen_on_a_later_page_is_adopted():
    first = page([building("b1")], NEXT_2)
    del first["metadata"]["transform"]
    session = FakeSession([
        make_response(BASE_QUERY, body=first),
        make_response(BASE_QUERY, body=page([building("b2", 2)])),
    ])

    collection = _fetch(session)

    assert len(collection.features) == 2
    assert collection.transform.translate == (125000.0, 497000.0, 0.0)
