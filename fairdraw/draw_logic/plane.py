"""
Grid (2D) front end for the balanced draw engine.

Maps a rows x cols grid onto linear ids 0..rows*cols-1 in row-major order with
1-based external coordinates:

    index = (row - 1) * cols + (col - 1)
    row   = index // cols + 1
    col   = index % cols + 1

The plane owns exactly one BalancedDraw and only uses its public operations;
it keeps no draw state of its own. Grid state is stored under its own
deterministic ID (tagged with rows and cols) so a grid never collides with a
1D range of the same size in the state file.
"""

import logging
from typing import Dict, Iterable, List, Tuple

from fairdraw.draw_logic.balanced_draw import (
    DEFAULT_COLD_START_BOOST,
    DEFAULT_DECAY_FACTOR,
    DEFAULT_MAX_GAP_THRESHOLD,
    DEFAULT_MIN_POOL_SIZE,
    NEVER_DRAWN,
    BalancedDraw,
    RngLike,
)
from fairdraw.draw_logic.identifier_space import (
    PLANE_TYPE_TAG,
    IdentifierSpace,
    format_param,
    generate_id,
    tuning_params,
)
from fairdraw.errors import InvalidConfiguration, PersistenceError

logger = logging.getLogger(__name__)

Position = Tuple[int, int]


class BalancedDrawPlane:
    """
    Balanced draw over the cells of a grid.

    Every engine operation is re-exposed in (row, col) terms.
    """

    def __init__(
        self,
        rows: int,
        cols: int,
        min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
        max_gap_threshold: int = DEFAULT_MAX_GAP_THRESHOLD,
        cold_start_boost: float = DEFAULT_COLD_START_BOOST,
        decay_factor: float = DEFAULT_DECAY_FACTOR,
        rng: RngLike = None,
    ):
        """
        Initialize grid draw.

        Args:
            rows: Number of grid rows (> 0)
            cols: Number of grid columns (> 0)
            min_pool_size: Lower bound for the candidate pool size (> 0)
            max_gap_threshold: Draw-count spread that triggers outlier exclusion
            cold_start_boost: Weight multiplier for never-drawn cells
            decay_factor: Per-draw weight multiplier, applied exponentially
            rng: numpy Generator, integer seed, or None

        Raises:
            InvalidConfiguration: If the grid is empty or the tuning parameters are invalid
        """
        if rows <= 0 or cols <= 0:
            raise InvalidConfiguration(f"Grid must have at least one row and one column (got {rows}x{cols})")

        self._rows = int(rows)
        self._cols = int(cols)
        self._engine = BalancedDraw(
            IdentifierSpace.from_range(0, self._rows * self._cols - 1),
            min_pool_size=min_pool_size,
            max_gap_threshold=max_gap_threshold,
            cold_start_boost=cold_start_boost,
            decay_factor=decay_factor,
            rng=rng,
        )

        params = [format_param(self._rows), format_param(self._cols)] + tuning_params(
            min_pool_size, max_gap_threshold, cold_start_boost, decay_factor
        )
        self._data_id = generate_id(PLANE_TYPE_TAG, params)

        logger.debug(f"[PLANE] BalancedDrawPlane initialized: {self._data_id}")

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def data_id(self) -> str:
        return self._data_id

    @property
    def current_round(self) -> int:
        return self._engine.current_round

    @property
    def total_draws(self) -> int:
        return self._engine.total_draws

    @property
    def whitelist_only_mode(self) -> bool:
        return self._engine.whitelist_only_mode

    # ==================== Coordinate mapping ====================

    def position_to_index(self, row: int, col: int) -> int:
        """Linear id of a 1-based (row, col) position."""
        return (row - 1) * self._cols + (col - 1)

    def index_to_position(self, index: int) -> Position:
        """1-based (row, col) position of a linear id."""
        return (index // self._cols + 1, index % self._cols + 1)

    def in_bounds(self, row: int, col: int) -> bool:
        return 1 <= row <= self._rows and 1 <= col <= self._cols

    def _grid_indices(self, positions: Iterable[Position]) -> List[int]:
        # Positions outside the grid are ignored
        return [self.position_to_index(r, c) for r, c in positions if self.in_bounds(r, c)]

    def _extension_indices(self, positions: Iterable[Position]) -> List[int]:
        # Rows past the grid are allowed (they extend the id space); columns must fit
        return [self.position_to_index(r, c) for r, c in positions if r >= 1 and 1 <= c <= self._cols]

    def _all_positions(self):
        for row in range(1, self._rows + 1):
            for col in range(1, self._cols + 1):
                yield (row, col), self.position_to_index(row, col)

    # ==================== Drawing ====================

    def draw_position(self, store=None) -> Position:
        """
        Draw one grid position.

        Args:
            store: Optional DrawStateStore; grid state is saved after the draw

        Returns:
            (row, col), 1-based
        """
        number = self._engine.draw()
        if store is not None:
            self._auto_save(store)
        return self.index_to_position(number)

    def draw_multiple_positions(self, count: int, store=None) -> List[Position]:
        """
        Draw count positions one after another.

        Raises:
            InvalidCount: If count is not positive
            PoolTooSmall: If count exceeds the current candidate pool size
        """
        numbers = self._engine.draw_multiple(count)
        if store is not None:
            self._auto_save(store)
        return [self.index_to_position(n) for n in numbers]

    def reset_draw_counts(self) -> None:
        self._engine.reset_draw_counts()

    def candidate_positions(self) -> List[Position]:
        """Positions eligible for the next draw."""
        return [self.index_to_position(n) for n in self._engine.candidate_pool]

    # ==================== Statistics ====================

    def get_position_probabilities(self) -> Dict[Position, float]:
        """Selection probability of every grid cell; blacklisted cells report 0.0."""
        return {
            position: 0.0 if self._engine.is_in_blacklist(index) else self._engine.get_probability(index)
            for position, index in self._all_positions()
        }

    def get_position_draw_counts(self) -> Dict[Position, int]:
        """Draw count of every grid cell; blacklisted cells report 0."""
        return {
            position: 0 if self._engine.is_in_blacklist(index) else self._engine.get_draw_count(index)
            for position, index in self._all_positions()
        }

    def get_position_statistics(self) -> Dict[Position, Tuple[int, float, int]]:
        """
        (draw_count, probability, last_draw_round) for every grid cell.

        Blacklisted cells report (0, 0.0, -1).
        """
        statistics = {}
        for position, index in self._all_positions():
            if self._engine.is_in_blacklist(index):
                statistics[position] = (0, 0.0, NEVER_DRAWN)
            else:
                statistics[position] = (
                    self._engine.get_draw_count(index),
                    self._engine.get_probability(index),
                    self._engine.get_last_draw_round(index),
                )
        return statistics

    def get_average_draw_count(self) -> float:
        return self._engine.get_average_draw_count()

    def get_max_draw_count_gap(self) -> int:
        return self._engine.get_max_draw_count_gap()

    # ==================== Blacklist / whitelist ====================

    def set_blacklist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.set_blacklist(self._grid_indices(positions))

    def add_to_blacklist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.add_to_blacklist(self._grid_indices(positions))

    def remove_from_blacklist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.remove_from_blacklist(self._grid_indices(positions))

    def clear_blacklist(self) -> None:
        self._engine.clear_blacklist()

    def get_blacklist_positions(self) -> List[Position]:
        return [self.index_to_position(n) for n in self._engine.get_blacklist()]

    def is_position_in_blacklist(self, row: int, col: int) -> bool:
        if not self.in_bounds(row, col):
            return False
        return self._engine.is_in_blacklist(self.position_to_index(row, col))

    def set_whitelist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.set_whitelist(self._extension_indices(positions))

    def add_to_whitelist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.add_to_whitelist(self._extension_indices(positions))

    def remove_from_whitelist_positions(self, positions: Iterable[Position]) -> None:
        self._engine.remove_from_whitelist(self._extension_indices(positions))

    def clear_whitelist(self) -> None:
        self._engine.clear_whitelist()

    def get_whitelist_positions(self) -> List[Position]:
        return [self.index_to_position(n) for n in self._engine.get_whitelist()]

    def is_position_in_whitelist(self, row: int, col: int) -> bool:
        if row < 1 or not 1 <= col <= self._cols:
            return False
        return self._engine.is_in_whitelist(self.position_to_index(row, col))

    def set_whitelist_only_mode(self, whitelist_only: bool) -> None:
        self._engine.set_whitelist_only_mode(whitelist_only)

    # ==================== Persistence ====================

    def load_data(self, store) -> bool:
        """
        Restore grid state from store, if it holds a snapshot under the grid ID.

        Raises:
            PersistenceError: If the state file cannot be read
        """
        snapshot = store.get(self._data_id)
        if snapshot is None:
            logger.debug(f"[PLANE] No saved state for {self._data_id}")
            return False
        self._engine.apply_snapshot(snapshot)
        logger.info(f"[PLANE] Loaded state: {self._data_id}")
        return True

    def save_data(self, store) -> None:
        """
        Save grid state into store under the grid ID.

        Raises:
            PersistenceError: If the state file cannot be read or written
        """
        store.upsert(
            self._engine.to_snapshot(
                data_id=self._data_id,
                data_type=PLANE_TYPE_TAG,
                rows=self._rows,
                cols=self._cols,
            )
        )

    def _auto_save(self, store) -> None:
        try:
            self.save_data(store)
        except PersistenceError as e:
            logger.warning(f"[PLANE] Failed to save state after draw: {e}")
