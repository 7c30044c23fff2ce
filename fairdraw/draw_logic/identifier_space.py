"""
Identifier space for the balanced draw engine.

An identifier space is the universe of ids a draw engine is built over. It is
either an inclusive integer range or an explicit list of ids; both forms are
resolved once, at construction, into a canonical sorted and deduplicated tuple
so nothing downstream needs to know which form was used.

The space also derives the deterministic string ID under which engine state is
stored in the state file.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import FrozenSet, Iterable, Iterator, List, Sequence, Tuple

from fairdraw.errors import InvalidConfiguration

# Type tags written into the state file
RANGE_TYPE_TAG: str = "BalancedRand_Range"
LIST_TYPE_TAG: str = "BalancedRand_List"
PLANE_TYPE_TAG: str = "BalancedRandPlane"

# List-based IDs only include this many leading ids
LIST_ID_SAMPLE_SIZE: int = 10


def format_param(value) -> str:
    """
    Stringify one constructor parameter for use in a deterministic ID.

    Whole-number floats are written without a fractional part (2.0 -> "2"),
    other floats in their shortest round-trip digits without an exponent
    (0.7 -> "0.7", 1e-07 -> "0.0000001"). IDs written to existing state
    files use this format.

    Args:
        value: int, float or str parameter

    Returns:
        String form of the parameter
    """
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    return str(value)


def generate_id(data_type: str, params: Sequence[str]) -> str:
    """
    Build a deterministic ID: "{data_type}_{param1}_{param2}_...".

    Args:
        data_type: Type tag (e.g. "BalancedRand_Range")
        params: Ordered, already stringified parameters

    Returns:
        Deterministic ID string
    """
    return f"{data_type}_{'_'.join(params)}"


def tuning_params(
    min_pool_size: int,
    max_gap_threshold: int,
    cold_start_boost: float,
    decay_factor: float,
) -> List[str]:
    """Stringified tuning parameters in ID order."""
    return [
        format_param(min_pool_size),
        format_param(max_gap_threshold),
        format_param(float(cold_start_boost)),
        format_param(float(decay_factor)),
    ]


@dataclass(frozen=True)
class IdentifierSpace:
    """
    Immutable universe of draw ids.

    Build with from_range() or from_list(); the constructor itself expects an
    already canonical id tuple.
    """

    kind: str  # "range" or "list"
    ids: Tuple[int, ...]
    start: int = 0
    end: int = 0
    _id_set: FrozenSet[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_id_set", frozenset(self.ids))

    @classmethod
    def from_range(cls, start: int, end: int) -> "IdentifierSpace":
        """
        Create a space covering start..end inclusive.

        Raises:
            InvalidConfiguration: If start > end
        """
        if start > end:
            raise InvalidConfiguration(f"Range start ({start}) cannot be greater than end ({end})")
        return cls(kind="range", ids=tuple(range(start, end + 1)), start=start, end=end)

    @classmethod
    def from_list(cls, ids: Iterable[int]) -> "IdentifierSpace":
        """
        Create a space from an explicit list of ids (sorted, duplicates removed).

        Raises:
            InvalidConfiguration: If the list is empty
        """
        canonical = tuple(sorted(set(int(i) for i in ids)))
        if not canonical:
            raise InvalidConfiguration("Identifier list cannot be empty")
        return cls(kind="list", ids=canonical)

    @property
    def type_tag(self) -> str:
        return RANGE_TYPE_TAG if self.kind == "range" else LIST_TYPE_TAG

    @property
    def numbers(self) -> List[int]:
        """Explicit id list as stored in snapshots (empty for range spaces)."""
        return list(self.ids) if self.kind == "list" else []

    def identity_params(self) -> List[str]:
        """
        Ordered constructor parameters identifying this space.

        Range spaces contribute their two bounds. List spaces contribute a
        single comma-joined parameter holding at most the first
        LIST_ID_SAMPLE_SIZE canonical ids, so two long lists that share that
        prefix map to the same ID.
        """
        if self.kind == "range":
            return [format_param(self.start), format_param(self.end)]
        sample = self.ids[:LIST_ID_SAMPLE_SIZE]
        return [",".join(str(i) for i in sample)]

    def deterministic_id(
        self,
        min_pool_size: int,
        max_gap_threshold: int,
        cold_start_boost: float,
        decay_factor: float,
    ) -> str:
        """Deterministic state-file ID for this space and tuning parameters."""
        params = self.identity_params() + tuning_params(
            min_pool_size, max_gap_threshold, cold_start_boost, decay_factor
        )
        return generate_id(self.type_tag, params)

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self) -> Iterator[int]:
        return iter(self.ids)

    def __contains__(self, item) -> bool:
        return item in self._id_set
