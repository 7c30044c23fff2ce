"""
Balanced draw engine for fairdraw.

Draws one id at a time from a fixed universe so that, over many draws, every id
is picked about equally often while each single draw stays random.

Fairness comes from two layers:
- Candidate pool: before each draw only ids at or below the average draw count
  are eligible, with outlier exclusion when the spread between the most and
  least drawn ids grows past max_gap_threshold, and a minimum pool size that
  is topped up with the least drawn ids.
- Weighting: within the pool, ids are weighted by
  - Decay: decay_factor ** draw_count
  - Cold-start bonus for ids never drawn
  - Staleness bonus for ids that have waited more than half a cycle
  - Inverse frequency: 1 / (draw_count + 1)
  - Whitelist-extension bonus for whitelisted ids outside the universe

Blacklisted ids are never drawn. Whitelisted ids are always eligible and may
extend the universe with ids it did not originally contain.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from fairdraw.draw_logic.identifier_space import IdentifierSpace
from fairdraw.errors import (
    InvalidConfiguration,
    InvalidCount,
    PersistenceError,
    PoolTooSmall,
    SelectionImpossible,
)
from fairdraw.state.snapshot import DrawSnapshot, utc_now

logger = logging.getLogger(__name__)

# Sentinel round for ids that have never been drawn
NEVER_DRAWN: int = -1
# Lower bound for any candidate weight
MIN_WEIGHT: float = 0.01
# Staleness bonus divisor: weight *= 1 + ln(gap + 1) / STALENESS_DIVISOR
STALENESS_DIVISOR: float = 10.0

DEFAULT_MIN_POOL_SIZE: int = 3
DEFAULT_MAX_GAP_THRESHOLD: int = 5
DEFAULT_COLD_START_BOOST: float = 2.0
DEFAULT_DECAY_FACTOR: float = 0.7

RngLike = Union[np.random.Generator, int, None]


def make_rng(rng: RngLike = None) -> np.random.Generator:
    """Return rng unchanged if it is a Generator, otherwise seed a new one from it."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class BalancedDraw:
    """
    Fairness-balanced weighted random draw over an identifier space.

    Owns every per-id counter and both override lists; the candidate pool and
    probability snapshot are recomputed after each mutation.
    """

    def __init__(
        self,
        space: IdentifierSpace,
        min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
        max_gap_threshold: int = DEFAULT_MAX_GAP_THRESHOLD,
        cold_start_boost: float = DEFAULT_COLD_START_BOOST,
        decay_factor: float = DEFAULT_DECAY_FACTOR,
        rng: RngLike = None,
    ):
        """
        Initialize draw engine with every id at zero draws.

        Args:
            space: Universe of ids to draw from
            min_pool_size: Lower bound for the candidate pool size (> 0)
            max_gap_threshold: Draw-count spread that triggers outlier exclusion
            cold_start_boost: Weight multiplier for never-drawn and whitelist-extension ids
            decay_factor: Per-draw weight multiplier, applied exponentially
            rng: numpy Generator, integer seed, or None for fresh entropy

        Raises:
            InvalidConfiguration: If min_pool_size <= 0 or max_gap_threshold < 0
        """
        if min_pool_size <= 0:
            raise InvalidConfiguration(f"min_pool_size must be greater than 0 (got {min_pool_size})")
        if max_gap_threshold < 0:
            raise InvalidConfiguration(f"max_gap_threshold cannot be negative (got {max_gap_threshold})")

        self._space = space
        self._min_pool_size = int(min_pool_size)
        self._max_gap_threshold = int(max_gap_threshold)
        self._cold_start_boost = float(cold_start_boost)
        self._decay_factor = float(decay_factor)
        self._rng = make_rng(rng)

        self._draw_counts: Dict[int, int] = {n: 0 for n in space}
        self._last_draw_round: Dict[int, int] = {n: NEVER_DRAWN for n in space}
        self._current_round: int = 0
        self._total_draws: int = 0
        self._current_probabilities: Dict[int, float] = {}

        self._blacklist: set = set()
        self._whitelist: set = set()
        self._whitelist_only_mode: bool = False

        self._candidate_pool: List[int] = []
        self._data_id = space.deterministic_id(
            self._min_pool_size, self._max_gap_threshold, self._cold_start_boost, self._decay_factor
        )

        self._update_candidate_pool()

        logger.debug(f"[DRAW] BalancedDraw initialized: {self._data_id} ({len(space)} ids)")

    @classmethod
    def from_range(cls, start: int, end: int, **kwargs) -> "BalancedDraw":
        """Create an engine over start..end inclusive."""
        return cls(IdentifierSpace.from_range(start, end), **kwargs)

    @classmethod
    def from_list(cls, ids, **kwargs) -> "BalancedDraw":
        """Create an engine over an explicit id list."""
        return cls(IdentifierSpace.from_list(ids), **kwargs)

    # ==================== Properties ====================

    @property
    def space(self) -> IdentifierSpace:
        return self._space

    @property
    def data_id(self) -> str:
        """Deterministic ID this engine is stored under."""
        return self._data_id

    @property
    def candidate_pool(self) -> List[int]:
        """Ids eligible for the next draw, in pool order (copy)."""
        return list(self._candidate_pool)

    @property
    def current_round(self) -> int:
        return self._current_round

    @property
    def total_draws(self) -> int:
        return self._total_draws

    @property
    def min_pool_size(self) -> int:
        return self._min_pool_size

    @property
    def max_gap_threshold(self) -> int:
        return self._max_gap_threshold

    @property
    def cold_start_boost(self) -> float:
        return self._cold_start_boost

    @property
    def decay_factor(self) -> float:
        return self._decay_factor

    @property
    def whitelist_only_mode(self) -> bool:
        return self._whitelist_only_mode

    @property
    def active_ids(self) -> List[int]:
        """Universe plus whitelist extensions, ascending."""
        return sorted(set(self._space.ids) | self._whitelist)

    # ==================== Drawing ====================

    def draw(self, store=None) -> int:
        """
        Draw one id.

        If the candidate pool is empty, every counter is reset first so an
        exhausted pool cannot stall the engine.

        Args:
            store: Optional DrawStateStore; when given, the new state is saved
                   after the draw. Save failures are logged, not raised.

        Returns:
            The selected id

        Raises:
            SelectionImpossible: If no id can be drawn even after a reset
                                 (e.g. every id is blacklisted)
        """
        if not self._candidate_pool:
            logger.info("[DRAW] Candidate pool empty, resetting draw counts")
            self.reset_draw_counts()
            if not self._candidate_pool:
                raise SelectionImpossible("Candidate pool is empty after reset")

        self._current_round += 1

        weights = self._calculate_weights()
        selected = self._weighted_random_select(weights)

        self._draw_counts[selected] = self._draw_counts.get(selected, 0) + 1
        self._last_draw_round[selected] = self._current_round
        self._total_draws += 1

        self._update_candidate_pool()

        logger.debug(
            f"[DRAW] Round {self._current_round}: selected {selected} "
            f"(weight={weights.get(selected, 0.0):.3f}, draws={self._draw_counts[selected]}, "
            f"pool={len(self._candidate_pool)})"
        )

        if store is not None:
            self._auto_save(store)

        return selected

    def draw_multiple(self, count: int, store=None) -> List[int]:
        """
        Draw count ids one after another.

        The pool size check happens once, before the first draw. The pool is
        recomputed after every draw, so the check does not guarantee the pool
        keeps that size for the whole batch.

        Args:
            count: Number of ids to draw
            store: Optional DrawStateStore; state is saved once, after the last draw

        Returns:
            Selected ids in draw order

        Raises:
            InvalidCount: If count is not positive
            PoolTooSmall: If count exceeds the current candidate pool size
        """
        if count <= 0:
            raise InvalidCount(f"Draw count must be greater than 0 (got {count})")

        pool_size = len(self._candidate_pool)
        if count > pool_size:
            raise PoolTooSmall(count, pool_size)

        results = []
        for i in range(count):
            # Only save after the last draw
            results.append(self.draw(store if i == count - 1 else None))
        return results

    def reset_draw_counts(self) -> None:
        """Zero every counter for the universe and whitelist, and restart the round count."""
        for number in self._space:
            self._draw_counts[number] = 0
            self._last_draw_round[number] = NEVER_DRAWN

        for number in self._whitelist:
            self._draw_counts[number] = 0
            self._last_draw_round[number] = NEVER_DRAWN

        self._total_draws = 0
        self._current_round = 0
        self._update_candidate_pool()

        logger.info(f"[DRAW] Draw counts reset: {self._data_id}")

    # ==================== Statistics ====================

    def get_statistics(self) -> List[Tuple[int, int]]:
        """Draw count per active id, ascending by id."""
        return [(n, self._draw_counts.get(n, 0)) for n in self.active_ids]

    def get_probabilities(self) -> List[Tuple[int, float]]:
        """Current selection probability per active id, ascending by id."""
        return [(n, self._current_probabilities.get(n, 0.0)) for n in self.active_ids]

    def get_draw_count(self, number: int) -> int:
        return self._draw_counts.get(number, 0)

    def get_last_draw_round(self, number: int) -> int:
        """Round the id was last drawn in, or NEVER_DRAWN (-1)."""
        return self._last_draw_round.get(number, NEVER_DRAWN)

    def get_probability(self, number: int) -> float:
        return self._current_probabilities.get(number, 0.0)

    def get_average_draw_count(self) -> float:
        """Mean draw count over the active ids."""
        active = self.active_ids
        if not active:
            return 0.0
        return sum(self._draw_counts.get(n, 0) for n in active) / len(active)

    def get_max_draw_count_gap(self) -> int:
        """Difference between the highest and lowest draw count over the active ids."""
        counts = [self._draw_counts.get(n, 0) for n in self.active_ids]
        if not counts:
            return 0
        return max(counts) - min(counts)

    # ==================== Blacklist / whitelist ====================

    def set_blacklist(self, numbers) -> None:
        """Replace the blacklist. Ids outside the universe are dropped."""
        self._blacklist = {n for n in numbers if n in self._space}
        self._validate_blacklist()
        self._update_candidate_pool()

    def add_to_blacklist(self, numbers) -> None:
        """Blacklist more ids. Ids outside the universe are dropped."""
        self._blacklist.update(n for n in numbers if n in self._space)
        self._validate_blacklist()
        self._update_candidate_pool()

    def remove_from_blacklist(self, numbers) -> None:
        for number in numbers:
            self._blacklist.discard(number)
        self._update_candidate_pool()

    def clear_blacklist(self) -> None:
        self._blacklist.clear()
        self._update_candidate_pool()

    def get_blacklist(self) -> List[int]:
        return sorted(self._blacklist)

    def is_in_blacklist(self, number: int) -> bool:
        return number in self._blacklist

    def set_whitelist(self, numbers) -> None:
        """
        Replace the whitelist.

        Whitelisted ids do not have to belong to the universe; ids outside it
        join the active set with a fresh count.
        """
        self._whitelist = set(numbers)
        self._register_whitelist()
        self._update_candidate_pool()

    def add_to_whitelist(self, numbers) -> None:
        self._whitelist.update(numbers)
        self._register_whitelist()
        self._update_candidate_pool()

    def remove_from_whitelist(self, numbers) -> None:
        for number in numbers:
            self._whitelist.discard(number)
        self._update_candidate_pool()

    def clear_whitelist(self) -> None:
        self._whitelist.clear()
        self._update_candidate_pool()

    def get_whitelist(self) -> List[int]:
        return sorted(self._whitelist)

    def is_in_whitelist(self, number: int) -> bool:
        return number in self._whitelist

    def set_whitelist_only_mode(self, whitelist_only: bool) -> None:
        """Restrict the candidate pool to whitelisted ids (counts are left untouched)."""
        self._whitelist_only_mode = bool(whitelist_only)
        self._update_candidate_pool()

    def _validate_blacklist(self) -> None:
        invalid = [n for n in self._blacklist if n not in self._space]
        for number in invalid:
            self._blacklist.discard(number)
        if invalid:
            logger.debug(f"[DRAW] Dropped {len(invalid)} blacklist id(s) outside the universe")

    def _register_whitelist(self) -> None:
        for number in self._whitelist:
            self._draw_counts.setdefault(number, 0)
            self._last_draw_round.setdefault(number, NEVER_DRAWN)

    # ==================== Persistence ====================

    def to_snapshot(
        self,
        data_id: Optional[str] = None,
        data_type: Optional[str] = None,
        rows: int = 0,
        cols: int = 0,
    ) -> DrawSnapshot:
        """
        Capture the current state.

        Args:
            data_id: ID to store under (defaults to this engine's deterministic ID)
            data_type: Type tag (defaults to the identifier space's tag)
            rows: Grid rows, 0 for non-grid owners
            cols: Grid columns, 0 for non-grid owners
        """
        return DrawSnapshot(
            id=data_id or self._data_id,
            data_type=data_type or self._space.type_tag,
            last_updated=utc_now(),
            draw_counts=dict(self._draw_counts),
            last_draw_round=dict(self._last_draw_round),
            current_round=self._current_round,
            total_draws=self._total_draws,
            current_probabilities=dict(self._current_probabilities),
            min_pool_size=self._min_pool_size,
            max_gap_threshold=self._max_gap_threshold,
            cold_start_boost=self._cold_start_boost,
            decay_factor=self._decay_factor,
            rows=rows,
            cols=cols,
            numbers=self._space.numbers,
            number_range_start=self._space.start,
            number_range_end=self._space.end,
            blacklist=sorted(self._blacklist),
            whitelist=sorted(self._whitelist),
            whitelist_only_mode=self._whitelist_only_mode,
        )

    def apply_snapshot(self, snapshot: DrawSnapshot) -> None:
        """
        Overwrite the live state with a stored snapshot.

        Per-id values are only taken for ids this engine already knows
        (universe plus restored whitelist); stored ids outside that set are
        ignored. The candidate pool and probabilities are recomputed
        afterwards.
        """
        if snapshot.min_pool_size > 0:
            self._min_pool_size = snapshot.min_pool_size
        else:
            logger.warning(f"[DRAW] Ignoring stored min_pool_size={snapshot.min_pool_size} for {snapshot.id}")
        self._max_gap_threshold = max(0, snapshot.max_gap_threshold)
        self._cold_start_boost = snapshot.cold_start_boost
        self._decay_factor = snapshot.decay_factor

        self._blacklist = set(snapshot.blacklist)
        self._whitelist = set(snapshot.whitelist)
        self._whitelist_only_mode = snapshot.whitelist_only_mode
        self._validate_blacklist()
        self._register_whitelist()

        for number, count in snapshot.draw_counts.items():
            if number in self._draw_counts:
                self._draw_counts[number] = count

        for number, round_index in snapshot.last_draw_round.items():
            if number in self._last_draw_round:
                self._last_draw_round[number] = round_index

        self._current_round = snapshot.current_round
        self._total_draws = snapshot.total_draws

        self._update_candidate_pool()

    def load_data(self, store) -> bool:
        """
        Restore state from store, if it holds a snapshot under this engine's ID.

        Returns:
            True if a snapshot was found and applied

        Raises:
            PersistenceError: If the state file cannot be read
        """
        snapshot = store.get(self._data_id)
        if snapshot is None:
            logger.debug(f"[DRAW] No saved state for {self._data_id}")
            return False
        self.apply_snapshot(snapshot)
        logger.info(f"[DRAW] Loaded state: {self._data_id} (round {self._current_round}, {self._total_draws} draws)")
        return True

    def save_data(self, store) -> None:
        """
        Save the current state into store under this engine's ID.

        Raises:
            PersistenceError: If the state file cannot be read or written
        """
        store.upsert(self.to_snapshot())

    def _auto_save(self, store) -> None:
        try:
            self.save_data(store)
        except PersistenceError as e:
            logger.warning(f"[DRAW] Failed to save state after draw: {e}")

    # ==================== Internals ====================

    def _update_candidate_pool(self) -> None:
        """
        Recompute the ids eligible for the next draw, then the probabilities.

        Steps, in order:
        1. Whitelist-only mode: start from the whitelist alone.
        2. Otherwise keep universe ids with count <= ceil(mean active count).
        3. If the active count spread exceeds max_gap_threshold, drop ids at
           the current max or min count and re-filter against the mean of
           what is left.
        4. Add whitelisted ids not yet present.
        5. Remove blacklisted ids.
        6. Top up to min_pool_size with the least drawn remaining ids.
        """
        counts = self._draw_counts
        active = self.active_ids

        if self._whitelist_only_mode:
            candidates = sorted(self._whitelist)
        else:
            limit = math.ceil(self.get_average_draw_count())
            candidates = [n for n in self._space if counts.get(n, 0) <= limit]

            if self.get_max_draw_count_gap() > self._max_gap_threshold:
                active_counts = [counts.get(n, 0) for n in active]
                max_count = max(active_counts)
                min_count = min(active_counts)
                candidates = [n for n in candidates if counts.get(n, 0) not in (max_count, min_count)]

                if candidates:
                    new_average = sum(counts.get(n, 0) for n in candidates) / len(candidates)
                    new_limit = math.ceil(new_average)
                    candidates = [n for n in candidates if counts.get(n, 0) <= new_limit]

                logger.debug(
                    f"[POOL] Outlier exclusion (min={min_count}, max={max_count}): "
                    f"{len(candidates)} candidate(s) left"
                )

            present = set(candidates)
            candidates.extend(n for n in sorted(self._whitelist) if n not in present)

        candidates = [n for n in candidates if n not in self._blacklist]

        if len(candidates) < self._min_pool_size:
            present = set(candidates)
            backfill = [n for n in active if n not in self._blacklist and n not in present]
            backfill.sort(key=self._backfill_key)
            candidates.extend(backfill[: self._min_pool_size - len(candidates)])

        self._candidate_pool = candidates
        self._update_probabilities()

    def _backfill_key(self, number: int) -> Tuple[int, float]:
        # Never-drawn ids sort after every drawn id with the same count
        last_round = self._last_draw_round.get(number, NEVER_DRAWN)
        return (self._draw_counts.get(number, 0), math.inf if last_round < 0 else last_round)

    def _calculate_weights(self) -> Dict[int, float]:
        """
        Calculate the unnormalized selection weight of every pool id.

        Returns:
            Mapping of id to weight (>= MIN_WEIGHT), in pool order
        """
        weights: Dict[int, float] = {}
        extension_count = sum(1 for n in self._whitelist if n not in self._space)
        active_count = len(self._space) + extension_count

        for number in self._candidate_pool:
            if number in self._blacklist:
                continue

            weight = 1.0
            draw_count = self._draw_counts.get(number, 0)

            weight *= self._decay_factor ** draw_count

            last_round = self._last_draw_round.get(number, NEVER_DRAWN)
            if last_round < 0:
                weight *= self._cold_start_boost
            else:
                rounds_since_last_draw = self._current_round - last_round
                if rounds_since_last_draw > active_count // 2:
                    weight *= 1.0 + math.log(rounds_since_last_draw + 1) / STALENESS_DIVISOR

            weight *= 1.0 / (draw_count + 1)

            if number not in self._space and number in self._whitelist:
                weight *= self._cold_start_boost

            weights[number] = max(weight, MIN_WEIGHT)

        return weights

    def _weighted_random_select(self, weights: Dict[int, float]) -> int:
        """
        Pick one id from the weight map.

        Falls back to a uniform pick from the candidate pool when the weights
        cannot form a distribution.

        Raises:
            SelectionImpossible: If the fallback pool is empty too
        """
        if weights:
            numbers = list(weights)
            values = np.fromiter(weights.values(), dtype=float, count=len(weights))
            total = values.sum()
            if np.isfinite(total) and total > 0 and np.all(values >= 0):
                index = self._rng.choice(len(numbers), p=values / total)
                return numbers[int(index)]
            logger.warning(f"[DRAW] Degenerate weights (total={total}), falling back to uniform pick")

        if not self._candidate_pool:
            raise SelectionImpossible("No weights and no candidates to select from")
        index = self._rng.integers(len(self._candidate_pool))
        return self._candidate_pool[int(index)]

    def _update_probabilities(self) -> None:
        """Normalize current weights into probabilities; ids outside the pool get 0."""
        probabilities: Dict[int, float] = {}

        if self._candidate_pool:
            weights = self._calculate_weights()
            total_weight = sum(weights.values())
            if total_weight > 0:
                for number, weight in weights.items():
                    probabilities[number] = weight / total_weight

        in_pool = set(self._candidate_pool)
        for number in self.active_ids:
            if number not in in_pool:
                probabilities[number] = 0.0

        self._current_probabilities = probabilities
