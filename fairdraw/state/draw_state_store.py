"""
Draw State Storage for fairdraw.

Provides atomic JSON storage for draw engine snapshots. The state file holds a
single JSON object mapping deterministic IDs to snapshot objects; it is always
read and written as a whole.
"""

import json
import logging
import os
from typing import Dict, Optional, Sequence, Tuple

from fairdraw.draw_logic.identifier_space import PLANE_TYPE_TAG, generate_id
from fairdraw.errors import PersistenceError, SnapshotNotFound
from fairdraw.state.snapshot import DrawSnapshot

logger = logging.getLogger(__name__)

Position = Tuple[int, int]


class DrawStateStore:
    """
    JSON-based snapshot storage with atomic writes.

    Uses a temporary file + atomic rename so an interrupted save leaves the
    previous file in place.
    """

    def __init__(self, path: str):
        """
        Initialize state store.

        Args:
            path: Path to JSON state file
        """
        self.path = str(path)
        logger.debug(f"[STORE] DrawStateStore initialized with path: {self.path}")

    def load(self) -> Dict[str, DrawSnapshot]:
        """
        Load every snapshot from the state file.

        Returns:
            Mapping of deterministic ID to snapshot; empty if the file does not exist

        Raises:
            PersistenceError: If the file cannot be read or decoded
        """
        if not os.path.exists(self.path):
            logger.debug(f"[STORE] No state file found at {self.path}")
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise TypeError(f"top-level JSON value must be an object, got {type(raw).__name__}")
            snapshots = {
                key: DrawSnapshot.from_dict(value, default_id=key)
                for key, value in raw.items()
            }
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"[STORE] Failed to load state from {self.path}: {e}")
            raise PersistenceError(f"Failed to load state from {self.path}: {e}") from e

        logger.debug(f"[STORE] Loaded {len(snapshots)} snapshot(s) from {self.path}")
        return snapshots

    def save(self, snapshots: Dict[str, DrawSnapshot]) -> None:
        """
        Save every snapshot to the state file atomically, replacing its contents.

        Args:
            snapshots: Mapping of deterministic ID to snapshot

        Raises:
            PersistenceError: If the file cannot be written
        """
        tmp = self.path + ".tmp"
        try:
            payload = {key: snapshot.to_dict() for key, snapshot in snapshots.items()}
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.path)
            logger.debug(f"[STORE] Saved {len(snapshots)} snapshot(s) to {self.path}")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[STORE] Failed to save state to {self.path}: {e}")
            # Clean up temp file on error
            try:
                if os.path.exists(tmp):
                    os.remove(tmp)
            except OSError:
                pass
            raise PersistenceError(f"Failed to save state to {self.path}: {e}") from e

    def get(self, data_id: str) -> Optional[DrawSnapshot]:
        """Return the snapshot stored under data_id, or None."""
        return self.load().get(data_id)

    def find_matching(self, data_type: str, params: Sequence[str]) -> Optional[DrawSnapshot]:
        """
        Look up a snapshot by exact deterministic ID.

        Args:
            data_type: Type tag (e.g. "BalancedRand_Range")
            params: Ordered, stringified constructor parameters

        Returns:
            Matching snapshot or None
        """
        return self.get(generate_id(data_type, params))

    def upsert(self, snapshot: DrawSnapshot) -> None:
        """
        Insert or replace one snapshot, keeping every other entry in the file.

        Raises:
            PersistenceError: If the existing file cannot be read or the new one written
        """
        snapshots = self.load()
        snapshots[snapshot.id] = snapshot
        self.save(snapshots)
        logger.info(f"[STORE] Saved snapshot: {snapshot.id}")

    def find_plane(self, rows: int, cols: int) -> DrawSnapshot:
        """
        Find the stored grid snapshot for the given dimensions.

        Any grid snapshot with matching rows and cols is accepted, whatever
        its tuning parameters.

        Raises:
            SnapshotNotFound: If no grid snapshot matches
        """
        for snapshot in self.load().values():
            if snapshot.data_type == PLANE_TYPE_TAG and snapshot.rows == rows and snapshot.cols == cols:
                return snapshot
        raise SnapshotNotFound(f"No grid snapshot found for [{rows}, {cols}]")

    def get_plane_probabilities(self, rows: int, cols: int) -> Dict[Position, float]:
        """
        Per-cell selection probabilities of the stored grid with these dimensions.

        Blacklisted cells and cells without a stored value report 0.0.

        Raises:
            SnapshotNotFound: If no grid snapshot matches
        """
        snapshot = self.find_plane(rows, cols)
        return _per_position(snapshot, snapshot.current_probabilities, 0.0)

    def get_plane_draw_counts(self, rows: int, cols: int) -> Dict[Position, int]:
        """
        Per-cell draw counts of the stored grid with these dimensions.

        Blacklisted cells and cells without a stored value report 0.

        Raises:
            SnapshotNotFound: If no grid snapshot matches
        """
        snapshot = self.find_plane(rows, cols)
        return _per_position(snapshot, snapshot.draw_counts, 0)


def _per_position(snapshot: DrawSnapshot, values: Dict[int, float], empty):
    blacklist = set(snapshot.blacklist)
    result = {}
    for index in range(snapshot.rows * snapshot.cols):
        position = (index // snapshot.cols + 1, index % snapshot.cols + 1)
        result[position] = empty if index in blacklist else values.get(index, empty)
    return result
