import hashlib
import bisect
import logging
from collections import namedtuple

import jsonpickle

logger = logging.getLogger(__name__)

# A ring is the replica count plus a tuple of (item, position) pairs sorted by position
Ring = namedtuple("Ring", ["replicas", "circle"])


class EmptyRing(Exception):
    pass


def _as_bytes(value):
    # str is hashed as UTF-8 but stored as given, so "A" and b"A" share positions
    # without being equal items. Use one type per item.
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"expected bytes or str, got {type(value).__name__}")


def _check_replicas(replicas):
    if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 1:
        raise ValueError(f"replicas must be a positive integer, got {replicas!r}")


def hash_key(key):
    """
    Hashes the key with SHA-1 and reads the 20 byte digest as a big-endian unsigned int.
    """
    return int(hashlib.sha1(_as_bytes(key)).hexdigest(), 16)


def get_item_points(item, replicas):
    """
    Returns the (item, position) points for an item.
    Point n is hash(item + "n") for n in 1..replicas, with n not zero padded.
    Replica hashes that collide with each other collapse into one point.

    :param item: The item to place on the ring
    :param replicas: How many times the item is hashed onto the ring
    """
    raw = _as_bytes(item)
    positions = {hash_key(raw + str(n).encode("ascii")) for n in range(1, replicas + 1)}
    return [(item, position) for position in sorted(positions)]


def _sort_circle(points):
    # Stable sort, then keep the first point seen at each position. Existing points come
    # before new ones, so an exact collision keeps whichever item was on the ring first.
    # This tie-break is inherited behaviour that changes ring contents if altered.
    circle = []
    for point in sorted(points, key=lambda point: point[1]):
        if circle and circle[-1][1] == point[1]:
            continue
        circle.append(point)
    return tuple(circle)


def create(initial_items, replicas):
    """
    Creates a ring that places every item on it `replicas` times.
    Items are added in the given order; the order only matters when two items hash to the same position.

    :param initial_items: The initial items
    :param replicas: The number of points per item, fixed for the life of the ring
    """
    _check_replicas(replicas)

    ring = Ring(replicas, ())
    for item in initial_items:
        ring = add(item, ring)
    logger.debug("Created ring with %d points from %d replicas", len(ring.circle), replicas)
    return ring


def add(item, ring):
    """
    Returns a new ring with the item's points added in.
    Points that land on an occupied position are dropped.
    """
    points = get_item_points(item, ring.replicas)
    return Ring(ring.replicas, _sort_circle(ring.circle + tuple(points)))


def remove(item, ring):
    """
    Returns a new ring without the item's points.
    Only points matching both the item and the position are removed.
    """
    # List membership so unhashable byte sequences (bytearray) work too
    points = get_item_points(item, ring.replicas)
    remaining = [point for point in ring.circle if point not in points]
    return Ring(ring.replicas, _sort_circle(remaining))


def lookup(key, ring):
    """
    Finds the item responsible for the key: the first point past the key's hash,
    wrapping around to the start of the circle.

    :param key: The key we want the item for
    RETURN: The item owning the key
    """
    if not ring.circle:
        raise EmptyRing("The ring has no items")

    position = hash_key(key)
    ring_location = bisect.bisect(ring.circle, position, key=lambda point: point[1]) % len(ring.circle)
    return ring.circle[ring_location][0]


def items(ring):
    """Returns the distinct items on the ring, in circle order of first appearance."""
    ordered = []
    for item, _position in ring.circle:
        if item not in ordered:
            ordered.append(item)
    return ordered


def dumps(ring):
    """
    Encodes a ring as a JSON string. Positions are written as plain integers.
    """
    return jsonpickle.encode(ring, keys=False)


def loads(data):
    """
    Decodes a ring produced by dumps() and checks that it is a well-formed ring:
    a positive replica count and a circle strictly ascending by position.

    jsonpickle can instantiate arbitrary objects while decoding, so only pass
    payloads from a trusted source.
    """
    ring = jsonpickle.decode(data, keys=False)
    if not isinstance(ring, Ring):
        raise ValueError("Payload does not hold a hash ring")
    _check_replicas(ring.replicas)

    circle = tuple(tuple(point) for point in ring.circle)
    previous = -1
    for point in circle:
        if len(point) != 2:
            raise ValueError(f"Ring point must be an (item, position) pair, got {point!r}")
        position = point[1]
        if isinstance(position, bool) or not isinstance(position, int) or position >= 2 ** 160:
            raise ValueError(f"Ring position out of range: {position!r}")
        if position <= previous:
            raise ValueError("Ring circle is not strictly ascending by position")
        previous = position
    return Ring(ring.replicas, circle)
