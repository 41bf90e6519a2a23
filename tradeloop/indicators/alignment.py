"""
Indicator alignment.

Rolling and EMA-style indicators produce fewer values than the input series
because of their warm-up period. ``IndicatorAligner.align`` maps a computed
series back onto input indices so that ``get(i)`` answers "what was the
indicator at kline i", with the warm-up span explicitly absent.

Usage:
    from tradeloop.indicators.alignment import IndicatorAligner
    from tradeloop.indicators.rsi import compute_rsi_series

    series = compute_rsi_series(klines, period=14)
    aligned = IndicatorAligner.align(len(klines), series)
    aligned.get(0)            # None, still warming up
    aligned.get(len(klines) - 1) == series[-1]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Iterator, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AlignmentError(ValueError):
    """Computed series is longer than its input: an upstream calculation defect."""


@dataclass(frozen=True)
class AlignedIndicatorResult(Generic[T]):
    """Indicator values positioned against the input series.

    Invariant: ``offset == total_length - len(values) >= 0``.
    """

    values: tuple[T, ...]
    offset: int
    total_length: int

    def __len__(self) -> int:
        return self.total_length

    def get(self, index: int) -> Optional[T]:
        """Value at input ``index``; ``None`` during warm-up.

        Raises:
            IndexError: If ``index`` is outside ``[0, total_length)``.
        """
        if index < 0 or index >= self.total_length:
            raise IndexError(f"index {index} out of range for length {self.total_length}")
        if index < self.offset:
            return None
        return self.values[index - self.offset]

    def has_value(self, index: int) -> bool:
        return self.offset <= index < self.total_length

    @property
    def latest(self) -> Optional[T]:
        return self.values[-1] if self.values else None

    def tail(self, n: int) -> tuple[T, ...]:
        """Last ``n`` computed values, oldest first."""
        if n <= 0:
            return ()
        return self.values[-n:]

    def items(self) -> Iterator[tuple[int, T]]:
        """Yield ``(input_index, value)`` pairs for every computed value."""
        for i, value in enumerate(self.values):
            yield self.offset + i, value


class IndicatorAligner:
    """Builds AlignedIndicatorResult values and rejects impossible alignments."""

    @staticmethod
    def align(total_length: int, computed_values: Sequence[T]) -> AlignedIndicatorResult[T]:
        """Align ``computed_values`` to an input series of ``total_length``.

        Raises:
            AlignmentError: If there are more computed values than inputs.
        """
        offset = total_length - len(computed_values)
        if offset < 0:
            logger.error(
                "Indicator alignment failed: %d values for %d inputs",
                len(computed_values),
                total_length,
            )
            raise AlignmentError(
                f"computed series length {len(computed_values)} exceeds input length {total_length}"
            )
        return AlignedIndicatorResult(values=tuple(computed_values), offset=offset, total_length=total_length)
