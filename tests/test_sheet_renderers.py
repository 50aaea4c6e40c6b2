"""Unit tests for the renderers used by ScoreExporter."""

import json

import pytest

from scoreflow.engine import RenderContext
from scoreflow.liquid_formatter import LiquidFormatter
from scoreflow.sheet_renderers import SvgHtmlRenderer, VexflowMarkdownRenderer


@pytest.fixture
def drawn_blocks(quarter_measure, grand_staff_measure, make_document) -> list[RenderContext]:
    measure = quarter_measure(("c#/5", "d/5", "e/5", "f/5"), key="D")
    notes = measure["parts"][0]["voices"][0]["notes"]
    notes[0]["accidentals"] = ["#"]
    notes[1]["duration"] = notes[2]["duration"] = "8"
    notes[3]["duration"] = "h"
    measure["parts"][0]["voices"][0]["beams"] = [[1, 2]]
    document = make_document([measure, grand_staff_measure()])

    formatter = document.get_formatter(LiquidFormatter).set_width(150)
    blocks = []
    for block in formatter.blocks():
        context = RenderContext(*block.dimensions)
        formatter.draw_block(block.index, context)
        blocks.append(context)
    return blocks


def test_blocks_fixture_breaks_lines(drawn_blocks) -> None:
    assert len(drawn_blocks) == 2


def test_svg_html_renderer_one_div_per_block(drawn_blocks) -> None:
    html = SvgHtmlRenderer().render(title="Demo", blocks=drawn_blocks)
    assert html.count('<div class="block">') == 2
    assert html.count("<svg ") == 2


def test_svg_html_renderer_draws_commands(drawn_blocks) -> None:
    svg = SvgHtmlRenderer().block_to_svg(drawn_blocks[0])
    assert svg.startswith('<svg xmlns="http://www.w3.org/2000/svg"')
    assert svg.count("<ellipse ") == 4
    assert "\U0001D11E" in svg
    assert "♯" in svg
    assert 'stroke-width="4"' in svg


def test_svg_html_renderer_draws_connector_and_bass_clef(drawn_blocks) -> None:
    svg = SvgHtmlRenderer().block_to_svg(drawn_blocks[1])
    assert "\U0001D122" in svg
    # two staves of five lines and a barline each, plus the connector
    assert svg.count("<line ") == 13
    assert svg.count("<ellipse ") == 2


def test_svg_html_renderer_pads_block_height() -> None:
    svg = SvgHtmlRenderer().block_to_svg(RenderContext(120, 90))
    assert 'width="120" height="130"' in svg


def test_build_html_title_and_heading() -> None:
    html = SvgHtmlRenderer().build_html("My Song", ["<svg></svg>"])
    assert "<title>My Song</title>" in html
    assert "<h1>My Song</h1>" in html


def test_build_html_empty_title_no_h1() -> None:
    html = SvgHtmlRenderer().build_html("", ["<svg></svg>"])
    assert "<h1>" not in html


def test_build_html_escapes_title() -> None:
    html = SvgHtmlRenderer().build_html('<Cool> "Fur & Feathers"', ["<svg></svg>"])
    assert "&lt;Cool&gt; &quot;Fur &amp; Feathers&quot;" in html


def test_build_html_keeps_lines_on_one_page() -> None:
    html = SvgHtmlRenderer().build_html("", ["<svg>UNIQUE_MARKER</svg>"])
    assert html.startswith("<!DOCTYPE html>")
    assert "UNIQUE_MARKER" in html
    assert "@media print" in html
    assert "page-break-inside: avoid" in html


def test_vexflow_markdown_renderer_has_heading(drawn_blocks) -> None:
    content = VexflowMarkdownRenderer().render(title="My Song", blocks=drawn_blocks)
    assert content.startswith("# My Song")


def test_vexflow_markdown_renderer_includes_container_and_script(drawn_blocks) -> None:
    content = VexflowMarkdownRenderer().render(title="Song", blocks=drawn_blocks)
    assert '<div id="scoreflow-score"></div>' in content
    assert 'id="scoreflow-score-data"' in content
    assert 'type="module"' in content
    assert "cdn.jsdelivr.net/npm/vexflow" in content


def test_vexflow_markdown_renderer_embeds_commands(drawn_blocks) -> None:
    content = VexflowMarkdownRenderer().render(title="Song", blocks=drawn_blocks)
    assert '"kind":"stave"' in content
    assert '"keys":["c#/5"]' in content
    assert '"kind":"beam"' in content
    assert '"type":"single"' in content


def test_vexflow_payload_is_json_ready(drawn_blocks) -> None:
    payload = VexflowMarkdownRenderer().build_payload("Song", drawn_blocks)
    decoded = json.loads(json.dumps(payload))
    assert [block["width"] for block in decoded["blocks"]] == [
        block.width for block in drawn_blocks
    ]
    assert decoded["blocks"][0]["commands"][0]["modifiers"][1] == {
        "type": "key",
        "value": "D",
        "x": drawn_blocks[0].commands[0]["modifiers"][1]["x"],
    }


def test_vexflow_markdown_renderer_escapes_script_end() -> None:
    context = RenderContext(10, 10)
    context.add("stave", label="</script>")
    content = VexflowMarkdownRenderer().render(title="Song", blocks=[context])
    assert "<\\/script>" in content
    assert content.count("</script>") == 2
