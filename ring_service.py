from flask import Flask, request
import os
import threading
import hash_ring
from hash_ring import EmptyRing

# Initializations
MY_ADDRESS = os.environ.get('SOCKET_ADDRESS', '0.0.0.0:8090')
MY_VIEW = os.environ.get('VIEW', '')
REPLICAS = int(os.environ.get('RING_REPLICAS', '100'))
if REPLICAS < 1:
    raise ValueError(f"RING_REPLICAS must be positive, got {REPLICAS}")

View = [name for name in MY_VIEW.split(',') if name]

# Readers take the reference as is; writers build a new ring and swap it under the lock
ring_lock = threading.Lock()
currentRing = hash_ring.create([name.encode() for name in View], REPLICAS)

app = Flask(__name__)


def swap_ring(change):
    """
    Applies <change> to the current ring and installs the result as the new current ring.
    RETURN: The previous and the new ring; <change> returning its argument means nothing changed

    :param change: A function taking a ring and returning a new ring
    """
    global currentRing
    with ring_lock:
        old = currentRing
        currentRing = change(old)
        return old, currentRing

def owns_points(item, ring):
    return any(point_item == item for point_item, _position in ring.circle)

def item_from_request():
    data = request.get_json(silent=True) or {}
    item = data.get('item')
    if not isinstance(item, str) or not item:
        return None
    return item.encode()


# Ring Operations =====================================================================================
@app.route('/ring', methods=['GET'])
def get_ring():
    """
    Returns the current ring: its replica count, point count, items and encoded form.
    """
    ring = currentRing
    return {
        "replicas": ring.replicas,
        "points": len(ring.circle),
        "items": [item.decode() for item in hash_ring.items(ring)],
        "ring": hash_ring.dumps(ring),
    }, 200

@app.route('/ring', methods=['PUT'])
def rebuild_ring():
    """
    Replaces the current ring with one built from the given replica count and items.
    """
    data = request.get_json(silent=True) or {}
    replicas = data.get('replicas')
    new_items = data.get('items', [])

    if not isinstance(new_items, list) or not all(isinstance(item, str) for item in new_items):
        return {"error": "items must be a list of strings"}, 400
    try:
        ring = hash_ring.create([item.encode() for item in new_items], replicas)
    except ValueError as e:
        return {"error": str(e)}, 400

    swap_ring(lambda _old: ring)
    app.logger.info("Rebuilt ring with %d items and %d replicas", len(new_items), replicas)
    return {"result": "created", "points": len(ring.circle)}, 201

@app.route('/ring/item', methods=['PUT'])
def add_item():
    """
    Adds an item to the ring.
    """
    item = item_from_request()
    if item is None:
        return {"error": "item must be a non-empty string"}, 400

    def add_if_absent(ring):
        if owns_points(item, ring):
            return ring
        return hash_ring.add(item, ring)

    old, ring = swap_ring(add_if_absent)

    # Already on the ring
    if ring is old:
        return {"result": "already present"}, 200
    app.logger.info("Added %s, ring now has %d points", item.decode(), len(ring.circle))
    return {"result": "added", "points": len(ring.circle)}, 201

@app.route('/ring/item', methods=['DELETE'])
def remove_item():
    """
    Removes an item and all of its points from the ring.
    """
    item = item_from_request()
    if item is None:
        return {"error": "item must be a non-empty string"}, 400

    def remove_if_present(ring):
        if not owns_points(item, ring):
            return ring
        return hash_ring.remove(item, ring)

    old, ring = swap_ring(remove_if_present)

    # Doesn't exist on the ring
    if ring is old:
        return {"error": "Ring has no such item"}, 404
    app.logger.info("Removed %s, ring now has %d points", item.decode(), len(ring.circle))
    return {"result": "deleted", "points": len(ring.circle)}, 200

@app.route('/ring/lookup/<key>', methods=['GET'])
def lookup_key(key):
    """
    Returns the item responsible for <key> along with the key's position on the ring.
    """
    try:
        item = hash_ring.lookup(key.encode(), currentRing)
    except EmptyRing:
        app.logger.warning("Lookup of %s against an empty ring", key)
        return {"error": "Ring is empty"}, 503
    return {"item": item.decode(), "position": str(hash_ring.hash_key(key.encode()))}, 200


#Main =====================================================================
if __name__ == "__main__":
    host, port = MY_ADDRESS.rsplit(':', 1)
    app.run(host=host, port=int(port), threaded=True)
