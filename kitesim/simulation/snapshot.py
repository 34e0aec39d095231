"""State snapshot wire format.

A snapshot is a plain JSON-compatible record of the kite, the tether and the
flight controller's persistent state:

    {
        "kite": {"pos": V, "ori": Q, "vel": V, "angVel": V},
        "tether": {"pos": [V, ...], "vel": [V, ...]},
        "fmc": {"pf": {"index": i}},
    }

where V is {"x", "y", "z"} and Q is {"_x", "_y", "_z", "_w"}. There is no
type tag: decoding tells vectors and quaternions apart by their key sets,
so `decode_object` can be handed to `json.loads` as an `object_hook`.

The flight mode and controller memory are not part of a snapshot. Import
validates the whole record before touching any state.

Example:
    >>> from kitesim.simulation import export_snapshot, snapshot_to_json
    >>>
    >>> text = snapshot_to_json(export_snapshot(kite, tether, controller))
    >>> import_snapshot(snapshot_from_json(text), kite, tether, controller)
"""

import json
import logging
import math
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from kitesim.dynamics.state import KiteState
from kitesim.errors import SnapshotValidationError
from kitesim.tether.tether import Tether
from kitesim.vehicle.kite import Kite

logger = logging.getLogger(__name__)

VECTOR_KEYS = frozenset({"x", "y", "z"})
QUATERNION_KEYS = frozenset({"_x", "_y", "_z", "_w"})

# Allowed deviation of an imported quaternion from unit norm
QUATERNION_NORM_TOLERANCE = 1e-6


class SnapshotParticipant(Protocol):
    """Controller side of a snapshot (the "fmc" member)."""

    def get_state(self) -> dict[str, Any]: ...

    def validate_state(self, state: Any) -> None: ...

    def set_state(self, state: dict[str, Any]) -> None: ...


# =============================================================================
# Encoding
# =============================================================================


def encode_vector(v: NDArray[np.float64]) -> dict[str, float]:
    """Encode a 3-vector as {"x", "y", "z"}."""
    return {"x": float(v[0]), "y": float(v[1]), "z": float(v[2])}


def encode_quaternion(q: NDArray[np.float64]) -> dict[str, float]:
    """Encode a scalar-first quaternion as {"_x", "_y", "_z", "_w"}."""
    return {"_x": float(q[1]), "_y": float(q[2]), "_z": float(q[3]), "_w": float(q[0])}


def decode_object(obj: dict[str, Any]) -> Any:
    """Turn vector and quaternion objects into arrays; pass others through.

    Quaternions come back scalar-first, [w, x, y, z].
    """
    keys = obj.keys()
    if not all(_is_number(value) for value in obj.values()):
        return obj
    if keys == VECTOR_KEYS:
        return np.array([obj["x"], obj["y"], obj["z"]], dtype=np.float64)
    if keys == QUATERNION_KEYS:
        return np.array([obj["_w"], obj["_x"], obj["_y"], obj["_z"]], dtype=np.float64)
    return obj


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def export_snapshot(kite: Kite, tether: Tether, controller: SnapshotParticipant) -> dict[str, Any]:
    """Capture kite, tether and controller state as a plain record."""
    state = kite.state
    positions, velocities = tether.get_state()
    return {
        "kite": {
            "pos": encode_vector(state.position),
            "ori": encode_quaternion(state.quaternion),
            "vel": encode_vector(state.velocity),
            "angVel": encode_vector(state.angular_velocity),
        },
        "tether": {
            "pos": [encode_vector(p) for p in positions],
            "vel": [encode_vector(v) for v in velocities],
        },
        "fmc": controller.get_state(),
    }


def snapshot_to_json(snapshot: dict[str, Any]) -> str:
    """Serialize a snapshot to JSON text."""
    return json.dumps(snapshot)


def snapshot_from_json(text: str) -> dict[str, Any]:
    """Parse JSON text into a snapshot with decoded vectors and quaternions."""
    try:
        snapshot = json.loads(text, object_hook=decode_object)
    except json.JSONDecodeError as e:
        raise SnapshotValidationError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(snapshot, dict):
        raise SnapshotValidationError("Snapshot must be a JSON object")
    return snapshot


# =============================================================================
# Validation
# =============================================================================


def _member(record: Any, key: str, where: str) -> Any:
    if not isinstance(record, dict):
        raise SnapshotValidationError(f"{where} must be an object")
    if key not in record:
        raise SnapshotValidationError(f"{where} is missing '{key}'")
    return record[key]


def _as_array(value: Any, keys: frozenset[str], where: str) -> NDArray[np.float64]:
    """Accept an already-decoded array or a raw keyed object."""
    if isinstance(value, dict):
        if value.keys() != keys:
            raise SnapshotValidationError(
                f"{where} must have fields {sorted(keys)}, got {sorted(value.keys())}"
            )
        if not all(_is_number(component) for component in value.values()):
            raise SnapshotValidationError(f"{where} has a non-numeric component")
        value = decode_object(value)
    size = len(keys)
    if (
        not isinstance(value, np.ndarray)
        or value.shape != (size,)
        or value.dtype != np.float64
    ):
        raise SnapshotValidationError(f"{where} must be a {size}-component object")
    if not np.all(np.isfinite(value)):
        raise SnapshotValidationError(f"{where} has non-finite components")
    return value


def _vector(record: Any, key: str, where: str) -> NDArray[np.float64]:
    return _as_array(_member(record, key, where), VECTOR_KEYS, f"{where}.{key}")


def _vector_list(record: Any, key: str, where: str) -> NDArray[np.float64]:
    items = _member(record, key, where)
    if not isinstance(items, list) or not items:
        raise SnapshotValidationError(f"{where}.{key} must be a non-empty list")
    return np.array([
        _as_array(item, VECTOR_KEYS, f"{where}.{key}[{i}]") for i, item in enumerate(items)
    ])


# =============================================================================
# Import
# =============================================================================


def import_snapshot(
    snapshot: dict[str, Any],
    kite: Kite,
    tether: Tether,
    controller: SnapshotParticipant,
) -> None:
    """Validate a snapshot and load it into kite, tether and controller.

    Nothing is modified unless the whole snapshot is valid. Kite thrust
    and control surface angles are left as they are.

    Raises:
        SnapshotValidationError: If any member is missing or malformed,
            the tether arrays do not match the configured point count, or
            the controller rejects its part.
    """
    kite_record = _member(snapshot, "kite", "snapshot")
    position = _vector(kite_record, "pos", "kite")
    velocity = _vector(kite_record, "vel", "kite")
    angular_velocity = _vector(kite_record, "angVel", "kite")
    quaternion = _as_array(_member(kite_record, "ori", "kite"), QUATERNION_KEYS, "kite.ori")
    if abs(math.sqrt(float(quaternion @ quaternion)) - 1.0) > QUATERNION_NORM_TOLERANCE:
        raise SnapshotValidationError("kite.ori must be a unit quaternion")

    tether_record = _member(snapshot, "tether", "snapshot")
    positions = _vector_list(tether_record, "pos", "tether")
    velocities = _vector_list(tether_record, "vel", "tether")
    expected = tether.properties.num_points
    if len(positions) != len(velocities):
        raise SnapshotValidationError(
            f"tether.pos has {len(positions)} points but tether.vel has {len(velocities)}"
        )
    if len(positions) != expected:
        raise SnapshotValidationError(
            f"tether has {len(positions)} points, expected {expected}"
        )

    fmc = _member(snapshot, "fmc", "snapshot")
    controller.validate_state(fmc)

    state = KiteState(
        position=position,
        velocity=velocity,
        quaternion=quaternion,
        angular_velocity=angular_velocity,
    )
    # Keep the exported bits; the norm was checked above
    state.quaternion = quaternion
    kite.set_state(state)
    tether.set_state(positions, velocities)
    controller.set_state(fmc)

    logger.info("Imported snapshot (%d tether points)", expected)
