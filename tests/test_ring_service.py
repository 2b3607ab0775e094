"""
Tests for the Flask ring service.
"""
import pytest

import hash_ring
import ring_service


@pytest.fixture
def client():
    ring_service.currentRing = hash_ring.create([b"s0", b"s1"], 4)
    ring_service.app.config['TESTING'] = True
    with ring_service.app.test_client() as client:
        yield client


def test_get_ring(client):
    res = client.get('/ring')
    assert res.status_code == 200
    body = res.get_json()
    assert body['replicas'] == 4
    assert body['points'] == 8
    assert sorted(body['items']) == ['s0', 's1']
    assert hash_ring.loads(body['ring']) == ring_service.currentRing


def test_rebuild_ring(client):
    res = client.put('/ring', json={"replicas": 3, "items": ["a", "b", "c"]})
    assert res.status_code == 201
    assert ring_service.currentRing == hash_ring.create([b"a", b"b", b"c"], 3)


@pytest.mark.parametrize("body", [{"items": ["a"]}, {"replicas": 0, "items": []}, {"replicas": 2, "items": "a"}])
def test_rebuild_ring_rejects_bad_input(client, body):
    before = ring_service.currentRing
    res = client.put('/ring', json=body)
    assert res.status_code == 400
    assert 'error' in res.get_json()
    assert ring_service.currentRing is before


def test_add_item(client):
    res = client.put('/ring/item', json={"item": "s2"})
    assert res.status_code == 201
    assert res.get_json()['points'] == 12
    assert b"s2" in hash_ring.items(ring_service.currentRing)

    res = client.put('/ring/item', json={"item": "s2"})
    assert res.status_code == 200
    assert res.get_json() == {"result": "already present"}


def test_add_item_requires_name(client):
    assert client.put('/ring/item', json={}).status_code == 400
    assert client.put('/ring/item', json={"item": ""}).status_code == 400


def test_remove_item(client):
    res = client.delete('/ring/item', json={"item": "s0"})
    assert res.status_code == 200
    assert hash_ring.items(ring_service.currentRing) == [b"s1"]

    res = client.delete('/ring/item', json={"item": "s0"})
    assert res.status_code == 404


def test_lookup(client):
    res = client.get('/ring/lookup/user-42')
    assert res.status_code == 200
    body = res.get_json()
    assert body['item'] == hash_ring.lookup(b"user-42", ring_service.currentRing).decode()
    assert int(body['position']) == hash_ring.hash_key(b"user-42")


def test_lookup_empty_ring(client):
    client.delete('/ring/item', json={"item": "s0"})
    client.delete('/ring/item', json={"item": "s1"})
    res = client.get('/ring/lookup/user-42')
    assert res.status_code == 503
    assert res.get_json() == {"error": "Ring is empty"}


def test_unchanged_ring_is_not_replaced(client):
    before = ring_service.currentRing
    assert client.put('/ring/item', json={"item": "s0"}).status_code == 200
    assert client.delete('/ring/item', json={"item": "ghost"}).status_code == 404
    assert ring_service.currentRing is before


def test_swap_ring_returns_previous_and_new(client):
    before = ring_service.currentRing
    old, new = ring_service.swap_ring(lambda ring: hash_ring.add(b"s9", ring))
    assert old is before
    assert new is ring_service.currentRing
    assert b"s9" in hash_ring.items(new)
