"""LiquidFormatter: fit measures onto lines of a given width."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Final

from scoreflow.cache import GeometryCache
from scoreflow.document import Document
from scoreflow.errors import ArgumentError, BlockOrderError, FormattingError
from scoreflow.formatter import BlockOptions, Formatter

logger = logging.getLogger(__name__)

# Left margin of a line; the right margin is the same.
LEFT_MARGIN: Final[int] = 10
MARGIN: Final[int] = 2 * LEFT_MARGIN


@dataclass
class Block:
    """One line of music: a contiguous run of measures."""

    index: int
    measures: list[int]
    width: float
    height: float = 0
    options: dict[int, BlockOptions] = field(default_factory=dict)

    @property
    def dimensions(self) -> tuple[float, float]:
        return self.width, self.height

    @property
    def first_measure(self) -> int:
        return self.measures[0]

    @property
    def last_measure(self) -> int:
        return self.measures[-1]


class LiquidFormatter(Formatter):
    """
    Default formatter: one block per line of music.

    Measures are taken greedily at their minimum widths until the line is
    full (the measure that fills or overflows it is kept on the line), then
    the space left over is shared evenly between the line's measures. A
    measure too wide for any line gets a line of its own, at its minimum
    width.
    """

    DEFAULT_OPTIONS: dict[str, Any] = {**Formatter.DEFAULT_OPTIONS, "width": 500}

    def __init__(self, document: Document, options: dict[str, Any] | None = None) -> None:
        super().__init__(document, options)
        self.width = self.options["width"]
        self._blocks: GeometryCache[int, Block | None] = GeometryCache("block")
        self.measure_x: dict[int, float] = {}
        self.measure_width: dict[int, float] = {}

    def set_width(self, width: float) -> "LiquidFormatter":
        if len(self._blocks):
            raise FormattingError("Cannot change the width after blocks have been laid out.")
        self.width = width
        return self

    def get_block(self, b: int) -> Block | None:
        """
        Lay out block ``b``, or return None past the last measure.

        Block ``b`` starts one past the last measure of block ``b - 1``, so
        blocks must be requested in increasing order.

        Raises:
            BlockOrderError: If block ``b - 1`` has not been requested yet.
        """
        if b < 0:
            raise ArgumentError(f"Invalid block number {b}.")
        if b > 0 and b not in self._blocks and (b - 1) not in self._blocks:
            raise BlockOrderError(f"Block {b} requested before block {b - 1}.")
        return self._blocks.get_or_compute(b, lambda: self._compute_block(b))

    def blocks(self) -> Iterator[Block]:
        """Iterate over all blocks in order."""
        b = 0
        block = self.get_block(b)
        while block is not None:
            yield block
            b += 1
            block = self.get_block(b)

    def _compute_block(self, b: int) -> Block | None:
        start_measure = 0
        if b > 0:
            previous = self._blocks.get(b - 1)
            if previous is None:
                return None
            start_measure = previous.last_measure + 1
        num_measures = self.document.get_number_of_measures()
        if start_measure >= num_measures:
            return None

        start_options = BlockOptions(system_start=True, piece_start=(b == 0))
        self.set_measure_options(start_measure, start_options)

        min_width = self.get_min_measure_width(start_measure)
        if min_width + MARGIN >= self.width:
            # Use only this measure, at the minimum possible width
            block = Block(b, [start_measure], min_width + MARGIN)
            self.measure_width[start_measure] = min_width
        else:
            block = Block(b, self._fill_line(start_measure, num_measures), self.width)
            self._share_width(block.measures)

        block.options[start_measure] = start_options
        for m in block.measures[1:]:
            block.options[m] = BlockOptions()
            self.set_measure_options(m, block.options[m])

        # Measure x positions run from the left margin
        x = LEFT_MARGIN
        for m in block.measures:
            self.measure_x[m] = x
            x += self.measure_width[m]

        # Height of the first measure is used for the whole block
        staves = self.get_staves(start_measure)
        if staves:
            block.height = staves[-1].y + staves[-1].get_height()

        logger.debug(
            "Block %d: measures %d-%d, %sx%s",
            b,
            block.first_measure,
            block.last_measure,
            block.width,
            block.height,
        )
        return block

    def _fill_line(self, start_measure: int, num_measures: int) -> list[int]:
        cur_measure = start_measure
        width = MARGIN
        while width < self.width and cur_measure < num_measures:
            width += self.get_min_measure_width(cur_measure)
            cur_measure += 1
        return list(range(start_measure, cur_measure))

    def _share_width(self, measures: list[int]) -> None:
        remaining_width = self.width - MARGIN
        for m in measures:
            self.measure_width[m] = math.ceil(self.get_min_measure_width(m))
            remaining_width -= self.measure_width[m]

        # Split the rest evenly, the remainder goes to the first measure
        extra_width = remaining_width // len(measures)
        for m in measures:
            self.measure_width[m] += extra_width
        self.measure_width[measures[0]] += remaining_width - extra_width * len(measures)

    def get_stave_x(self, m: int, s: int) -> float:
        if m not in self.measure_x:
            raise FormattingError(f"Measure {m} does not belong to a block.")
        return self.measure_x[m]

    def get_stave_width(self, m: int, s: int) -> float:
        if m not in self.measure_width:
            raise FormattingError(f"Measure {m} does not belong to a block.")
        return self.measure_width[m]
