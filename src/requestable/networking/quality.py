"""Quality-value (q-value) lists for content negotiation headers.

``Quality.from_values(["br", "gzip", "deflate"]).encoded`` yields
``"br;q=1.0,gzip;q=0.9,deflate;q=0.8"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence


@dataclass(frozen=True)
class QualityItem:
    """One value of a q-value list and its optional weight."""

    item: str
    q: float | None = None

    @property
    def encoded(self) -> str:
        if self.q is None:
            return self.item
        return f"{self.item};q={_format_weight(self.q)}"


def _format_weight(weight: float) -> str:
    # At most three decimals are allowed for a qvalue.
    return repr(round(float(weight), 3))


def weight_for_position(index: int) -> float:
    """Return the weight assigned to the item at ``index``.

    Weights start at 1.0 and drop by 0.1 per position; positions past the
    tenth are clamped to 0.0 so the value stays inside the 0.0 - 1.0 range.
    """
    if index < 0:
        raise ValueError("index must be >= 0")
    return max(0.0, round(1.0 - index * 0.1, 1))


class Quality(Sequence[QualityItem]):
    """Ordered list of :class:`QualityItem`."""

    def __init__(self, items: Iterable[QualityItem] = ()) -> None:
        self._items = tuple(items)

    @classmethod
    def from_values(cls, values: Iterable[str]) -> Quality:
        """Build a list weighting ``values`` by position, best first."""
        return cls(
            QualityItem(value, weight_for_position(index))
            for index, value in enumerate(values)
        )

    @property
    def items(self) -> tuple[QualityItem, ...]:
        return self._items

    @property
    def encoded(self) -> str:
        return ",".join(item.encoded for item in self._items)

    def __getitem__(self, index):  # type: ignore[override]
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[QualityItem]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Quality):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __str__(self) -> str:
        return self.encoded

    def __repr__(self) -> str:
        return f"Quality({self.encoded!r})"


def quality_encoded(values: Iterable[str]) -> str:
    """Shorthand for ``Quality.from_values(values).encoded``."""
    return Quality.from_values(values).encoded
