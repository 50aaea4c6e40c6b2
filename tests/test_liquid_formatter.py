"""Tests for line breaking and width sharing in LiquidFormatter."""

from collections.abc import Callable
from typing import Any

import pytest

from scoreflow.document import Document
from scoreflow.engine import RenderContext
from scoreflow.errors import ArgumentError, BlockOrderError, FormattingError, InvalidIRError
from scoreflow.formatter import BlockOptions
from scoreflow.liquid_formatter import LiquidFormatter


class FixedWidthFormatter(LiquidFormatter):
    """Liquid layout over measures with preset minimum widths."""

    def get_min_measure_width(self, m: int) -> float:
        return self.options["min_widths"][m]


def _fixed_layout(
    quarter_measure: Callable[..., dict[str, Any]],
    min_widths: list[float],
    width: float = 500,
) -> FixedWidthFormatter:
    document = Document({"type": "document", "measures": [quarter_measure() for _ in min_widths]})
    formatter = document.get_formatter(FixedWidthFormatter, {"min_widths": min_widths})
    return formatter.set_width(width)


def test_single_measure_fills_the_line(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure()]).get_formatter(LiquidFormatter)

    block = formatter.get_block(0)
    assert formatter.get_min_measure_width(0) == 143
    assert block.measures == [0]
    assert block.dimensions == (500, 90)
    assert formatter.get_stave_x(0, 0) == 10
    assert formatter.get_stave_width(0, 0) == 480
    assert block.options[0] == BlockOptions(system_start=True, piece_start=True)
    assert formatter.get_block(1) is None


def test_extra_width_is_shared_evenly(quarter_measure) -> None:
    formatter = _fixed_layout(quarter_measure, [100, 100, 100])
    block = formatter.get_block(0)

    assert block.measures == [0, 1, 2]
    assert [formatter.get_stave_width(m, 0) for m in range(3)] == [160, 160, 160]
    assert [formatter.get_stave_x(m, 0) for m in range(3)] == [10, 170, 330]
    assert block.options[1] == BlockOptions()


def test_rounding_remainder_goes_to_first_measure(quarter_measure) -> None:
    formatter = _fixed_layout(quarter_measure, [100.5, 100, 100])
    formatter.get_block(0)
    assert [formatter.get_stave_width(m, 0) for m in range(3)] == [162, 159, 159]


def test_overflowing_measure_stays_on_the_line(quarter_measure) -> None:
    formatter = _fixed_layout(quarter_measure, [200, 200, 200, 200])
    first = formatter.get_block(0)
    second = formatter.get_block(1)

    assert first.measures == [0, 1, 2]
    assert [formatter.get_stave_width(m, 0) for m in range(3)] == [160, 160, 160]
    assert second.measures == [3]
    assert formatter.get_stave_width(3, 0) == 480
    assert formatter.get_block(2) is None


def test_oversized_measure_gets_its_own_block(quarter_measure) -> None:
    formatter = _fixed_layout(quarter_measure, [600])
    block = formatter.get_block(0)

    assert block.measures == [0]
    assert block.width == 620
    assert formatter.get_stave_width(0, 0) == 600


def test_oversized_measure_then_normal_line(quarter_measure) -> None:
    formatter = _fixed_layout(quarter_measure, [600, 100, 100])
    blocks = list(formatter.blocks())

    assert [block.measures for block in blocks] == [[0], [1, 2]]
    assert blocks[0].width == 620
    assert [formatter.get_stave_width(m, 0) for m in (1, 2)] == [240, 240]
    assert formatter.get_stave_x(1, 0) == 10
    assert blocks[1].options[1] == BlockOptions(system_start=True, piece_start=False)


def test_real_measures_share_width(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure(), quarter_measure()]).get_formatter(LiquidFormatter)
    block = formatter.get_block(0)

    assert block.measures == [0, 1]
    assert formatter.get_min_measure_width(1) == 85
    assert formatter.get_stave_width(0, 0) == 269
    assert formatter.get_stave_width(1, 0) == 211
    assert formatter.get_stave_x(1, 0) == 279


def test_blocks_partition_the_measures(quarter_measure, grand_staff_measure, make_document) -> None:
    measures = [
        quarter_measure(),
        grand_staff_measure(),
        quarter_measure(("c/4", "e/4", "g/4", "c/5"), key="D"),
        quarter_measure(),
        grand_staff_measure(),
        quarter_measure(),
    ]
    document = make_document(measures)
    for width in (120, 300, 500, 900):
        formatter = document.get_formatter(LiquidFormatter).set_width(width)
        blocks = list(formatter.blocks())

        covered = [m for block in blocks for m in block.measures]
        assert covered == list(range(len(measures)))
        for block in blocks:
            assert block.options[block.first_measure].system_start
            assert all(not block.options[m].system_start for m in block.measures[1:])
            if len(block.measures) > 1:
                widths = sum(formatter.get_stave_width(m, 0) for m in block.measures)
                assert widths == width - 20
        assert blocks[0].options[0].piece_start


def test_second_block_shows_clef_but_not_time(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure() for _ in range(3)]).get_formatter(LiquidFormatter)
    formatter.set_width(200)
    blocks = list(formatter.blocks())

    assert [block.measures for block in blocks] == [[0, 1], [2]]
    kinds = [modifier.kind for modifier in formatter.document.get_measure(2).get_stave(0).modifiers]
    assert kinds == ["clef"]
    stave = formatter.get_stave(2, 0)
    assert stave.get_note_start_x() - stave.x == 41


def test_grand_staff_height_and_drawing(grand_staff_measure, make_document) -> None:
    formatter = make_document([grand_staff_measure(), grand_staff_measure()]).get_formatter()
    block = formatter.get_block(0)

    assert formatter.get_min_measure_width(0) == 89
    assert block.height == 180
    assert formatter.get_stave(0, 1).y == 90

    context = RenderContext(*block.dimensions)
    formatter.draw_block(0, context)
    assert len(context.commands_of_kind("stave")) == 4
    assert len(context.commands_of_kind("voice")) == 4
    assert len(context.commands_of_kind("connector")) == 1
    bass_voice = context.commands_of_kind("voice")[1]
    assert bass_voice["stave"] == 1
    assert bass_voice["notes"][0]["clef"] == "bass"


def test_blocks_must_be_requested_in_order(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure()] * 3).get_formatter()
    with pytest.raises(BlockOrderError):
        formatter.get_block(2)
    with pytest.raises(ArgumentError):
        formatter.get_block(-1)


def test_stave_geometry_requires_a_block(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure()]).get_formatter()
    with pytest.raises(FormattingError):
        formatter.get_stave(0, 0)
    with pytest.raises(FormattingError):
        formatter.draw_block(1, RenderContext())


def test_width_is_fixed_once_laid_out(quarter_measure, make_document) -> None:
    formatter = make_document([quarter_measure()]).get_formatter()
    assert formatter.set_width(300) is formatter
    formatter.get_block(0)
    with pytest.raises(FormattingError):
        formatter.set_width(400)


def test_empty_document_has_no_blocks(make_document) -> None:
    formatter = make_document([]).get_formatter()
    assert formatter.get_block(0) is None
    assert list(formatter.blocks()) == []


def test_failed_block_can_be_requested_again(quarter_measure, grand_staff_measure, make_document) -> None:
    broken = grand_staff_measure()
    del broken["parts"][0]["voices"][1]["stave"]
    formatter = make_document([quarter_measure(), broken]).get_formatter()

    with pytest.raises(InvalidIRError):
        formatter.get_block(0)
    with pytest.raises(InvalidIRError):
        formatter.get_block(0)


class FailOnceFormatter(FixedWidthFormatter):
    """Fails to measure measure 1 the first time it is asked."""

    failed = False

    def get_min_measure_width(self, m: int) -> float:
        if m == 1 and not self.failed:
            self.failed = True
            raise InvalidIRError("measure 1 is not ready")
        return super().get_min_measure_width(m)


def test_block_succeeds_after_a_failed_attempt(quarter_measure) -> None:
    document = Document({"type": "document", "measures": [quarter_measure(), quarter_measure()]})
    formatter = document.get_formatter(FailOnceFormatter, {"min_widths": [100, 100]}).set_width(500)

    with pytest.raises(InvalidIRError):
        formatter.get_block(0)
    block = formatter.get_block(0)

    assert block.measures == [0, 1]
    assert block.options[0] == BlockOptions(system_start=True, piece_start=True)
    assert [formatter.get_stave_width(m, 0) for m in range(2)] == [240, 240]
