"""Renderer implementations for drawn score blocks."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Final

from scoreflow.engine import KEY_SIGNATURES, RenderContext


def _escape_html(text: str) -> str:
    """Escape the characters that are unsafe in HTML text and attributes."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _fmt(value: float) -> str:
    """Compact number formatting for SVG attributes."""
    return f"{value:.2f}".rstrip("0").rstrip(".")


class SheetRenderer(ABC):
    """Abstract sheet renderer."""

    @property
    @abstractmethod
    def default_extension(self) -> str:
        """Default filename extension for this renderer."""

    @abstractmethod
    def render(self, *, title: str, blocks: list[RenderContext]) -> str:
        """Render drawn blocks into a file content string."""


class SvgHtmlRenderer(SheetRenderer):
    """Render each block as inline SVG in a self-contained HTML document."""

    # Room below the last stave for stems and ledger notes.
    _BOTTOM_PADDING: int = 40
    _STROKE: str = "#000"

    _CLEF_GLYPHS: Final[dict[str, tuple[str, int]]] = {
        # clef -> (glyph, stave line the glyph baseline sits on)
        "treble": ("\U0001D11E", 3),
        "bass": ("\U0001D122", 1),
        "alto": ("\U0001D121", 2),
        "tenor": ("\U0001D121", 1),
        "percussion": ("\U0001D125", 2),
    }
    _ACCIDENTAL_GLYPHS: Final[dict[str, str]] = {
        "#": "♯",
        "b": "♭",
        "n": "♮",
        "##": "\U0001D12A",
        "bb": "\U0001D12B",
    }
    _REST_GLYPHS: Final[dict[str, str]] = {
        "w": "\U0001D13B",
        "h": "\U0001D13C",
        "q": "\U0001D13D",
        "8": "\U0001D13E",
        "16": "\U0001D13F",
        "32": "\U0001D140",
        "64": "\U0001D141",
    }
    _DURATION_BASE_RE = re.compile(r"^(w|h|q|\d+)")

    @property
    def default_extension(self) -> str:
        return ".html"

    def render(self, *, title: str, blocks: list[RenderContext]) -> str:
        svgs = [self.block_to_svg(block) for block in blocks]
        return self.build_html(title, svgs)

    def block_to_svg(self, context: RenderContext) -> str:
        """Serialize the draw commands of one block to an SVG document."""
        width = _fmt(context.width)
        height = _fmt(context.height + self._BOTTOM_PADDING)
        elements: list[str] = []
        for command in context.commands:
            draw = getattr(self, f"_svg_{command['kind']}")
            elements.extend(draw(command))
        body = "\n".join(f"  {element}" for element in elements)
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
            f'viewBox="0 0 {width} {height}">\n{body}\n</svg>'
        )

    def _line(self, x1: float, y1: float, x2: float, y2: float, stroke_width: float = 1) -> str:
        return (
            f'<line x1="{_fmt(x1)}" y1="{_fmt(y1)}" x2="{_fmt(x2)}" y2="{_fmt(y2)}" '
            f'stroke="{self._STROKE}" stroke-width="{_fmt(stroke_width)}" />'
        )

    def _text(self, x: float, y: float, text: str, size: int) -> str:
        return f'<text x="{_fmt(x)}" y="{_fmt(y)}" font-size="{size}">{_escape_html(text)}</text>'

    def _svg_stave(self, command: dict[str, Any]) -> list[str]:
        x, width = command["x"], command["width"]
        top, spacing = command["top_line_y"], command["line_spacing"]
        bottom = top + (command["num_lines"] - 1) * spacing
        elements = [
            self._line(x, top + i * spacing, x + width, top + i * spacing)
            for i in range(command["num_lines"])
        ]
        elements.append(self._line(x + width, top, x + width, bottom))

        for modifier in command["modifiers"]:
            mx = modifier["x"]
            if modifier["type"] == "clef":
                glyph, line = self._CLEF_GLYPHS[modifier["value"]]
                elements.append(self._text(mx, top + line * spacing, glyph, 4 * spacing))
            elif modifier["type"] == "key":
                count = KEY_SIGNATURES[modifier["value"]]
                glyph = self._ACCIDENTAL_GLYPHS["#" if count > 0 else "b"]
                for i in range(abs(count)):
                    y = top + (1 + (i % 3) * 0.5) * spacing
                    elements.append(self._text(mx + i * spacing, y, glyph, 2 * spacing))
            else:
                value = modifier["value"]
                if "/" in value:
                    numerator, denominator = value.split("/", maxsplit=1)
                    elements.append(self._text(mx, top + 2 * spacing, numerator, 2 * spacing))
                    elements.append(self._text(mx, bottom, denominator, 2 * spacing))
                else:
                    elements.append(self._text(mx, top + 3 * spacing, value, 3 * spacing))
        return elements

    def _svg_voice(self, command: dict[str, Any]) -> list[str]:
        elements = []
        for note in command["notes"]:
            match = self._DURATION_BASE_RE.match(note["duration"])
            base = match.group(1) if match else "q"
            x = note["x"]
            if note["rest"]:
                glyph = self._REST_GLYPHS.get(base, self._REST_GLYPHS["q"])
                elements.append(self._text(x, note["heads"][0]["y"] + 5, glyph, 30))
                continue

            head_width = 16 if base == "w" else 10
            fill = "none" if base in ("w", "h") else self._STROKE
            for head in note["heads"]:
                elements.append(
                    f'<ellipse cx="{_fmt(x + head_width / 2)}" cy="{_fmt(head["y"])}" '
                    f'rx="{_fmt(head_width / 2)}" ry="4" fill="{fill}" stroke="{self._STROKE}" />'
                )
                if head["accidental"]:
                    glyph = self._ACCIDENTAL_GLYPHS.get(head["accidental"], "")
                    elements.append(self._text(x - 9, head["y"] + 4, glyph, 16))
            stem = note["stem"]
            if stem:
                elements.append(self._line(stem["x"], stem["y1"], stem["x"], stem["y2"]))
        return elements

    def _svg_beam(self, command: dict[str, Any]) -> list[str]:
        return [self._line(command["x1"], command["y"], command["x2"], command["y"], 4)]

    def _svg_connector(self, command: dict[str, Any]) -> list[str]:
        stroke_width = 3 if command["type"] in ("brace", "bracket") else 1
        return [self._line(command["x"], command["y1"], command["x"], command["y2"], stroke_width)]

    def build_html(self, title: str, svgs: list[str]) -> str:
        """
        Wrap a list of SVG strings in a self-contained HTML document.

        Each SVG is placed in its own ``.block`` div, one per line of music.
        The stylesheet keeps lines from being split across printed pages.
        """
        title_safe = _escape_html(title)
        heading = f"  <h1>{title_safe}</h1>\n" if title else ""
        blocks = "\n".join(f'  <div class="block">{svg}</div>' for svg in svgs)

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{title_safe}</title>
  <style>
    body {{
      font-family: Georgia, serif;
      background: #fff;
      margin: 0;
      padding: 2rem;
    }}
    h1 {{
      text-align: center;
      font-size: 1.6rem;
      margin-bottom: 2rem;
      color: #222;
    }}
    .block {{
      margin: 0 auto 1rem;
      width: fit-content;
    }}
    .block svg {{
      display: block;
    }}
    @media print {{
      body {{
        padding: 0;
      }}
      .block {{
        page-break-inside: avoid;
      }}
    }}
  </style>
</head>
<body>
{heading}{blocks}
</body>
</html>"""


_VEXFLOW_SCRIPT: Final[str] = """\
<script type="module">
  import {
    Accidental,
    Beam,
    Formatter,
    Renderer,
    Stave,
    StaveConnector,
    StaveNote,
    Voice
  } from "https://cdn.jsdelivr.net/npm/vexflow@4.2.3/build/esm/entry/vexflow.js";

  const host = document.getElementById("scoreflow-score");
  const payloadNode = document.getElementById("scoreflow-score-data");

  if (!host || !payloadNode) {
    throw new Error("Missing VexFlow score container.");
  }

  const payload = JSON.parse(payloadNode.textContent || "{}");

  const toStaveNote = (entry) => {
    const staveNote = new StaveNote({
      clef: entry.clef,
      keys: entry.keys,
      duration: entry.duration,
    });
    (entry.accidentals || []).forEach((symbol, noteIndex) => {
      if (symbol) {
        staveNote.addModifier(new Accidental(symbol), noteIndex);
      }
    });
    return staveNote;
  };

  (payload.blocks || []).forEach((block) => {
    const blockRoot = document.createElement("div");
    blockRoot.className = "scoreflow-block";
    host.appendChild(blockRoot);

    const renderer = new Renderer(blockRoot, Renderer.Backends.SVG);
    renderer.resize(block.width, block.height + 40);
    const context = renderer.getContext();

    const staves = new Map();
    const voices = new Map();
    const voicesByStave = new Map();
    const beams = [];

    block.commands.forEach((command, index) => {
      if (command.kind === "stave") {
        const stave = new Stave(command.x, command.y, command.width);
        command.modifiers.forEach((modifier) => {
          if (modifier.type === "clef") {
            stave.addClef(modifier.value);
          } else if (modifier.type === "key") {
            stave.addKeySignature(modifier.value);
          } else {
            stave.addTimeSignature(modifier.value);
          }
        });
        stave.setContext(context).draw();
        staves.set(index, stave);
      } else if (command.kind === "voice") {
        const voice = new Voice({ num_beats: command.num_beats, beat_value: command.beat_value });
        voice.setMode(Voice.Mode.SOFT);
        voice.addTickables(command.notes.map(toStaveNote));
        voices.set(index, voice);
        if (!voicesByStave.has(command.stave)) {
          voicesByStave.set(command.stave, []);
        }
        voicesByStave.get(command.stave).push(voice);
      } else if (command.kind === "beam") {
        const notes = voices.get(command.voice).getTickables();
        beams.push(new Beam(notes.slice(command.start, command.end + 1)));
      } else if (command.kind === "connector") {
        const connector = new StaveConnector(staves.get(command.top), staves.get(command.bottom));
        connector.setType(StaveConnector.type[command.type.toUpperCase()]);
        connector.setContext(context).draw();
      }
    });

    voicesByStave.forEach((staveVoices, staveIndex) => {
      const stave = staves.get(staveIndex);
      new Formatter().joinVoices(staveVoices).format(
        staveVoices,
        stave.getNoteEndX() - stave.getNoteStartX(),
      );
      staveVoices.forEach((voice) => voice.draw(context, stave));
    });
    beams.forEach((beam) => beam.setContext(context).draw());
  });
</script>
"""


class VexflowMarkdownRenderer(SheetRenderer):
    """Render drawn blocks into Markdown with an embedded VexFlow script."""

    @property
    def default_extension(self) -> str:
        return ".md"

    def build_payload(self, title: str, blocks: list[RenderContext]) -> dict[str, Any]:
        return {
            "title": title,
            "blocks": [
                {"width": block.width, "height": block.height, "commands": block.commands}
                for block in blocks
            ],
        }

    def render(self, *, title: str, blocks: list[RenderContext]) -> str:
        title_safe = _escape_html(title)
        score_json = json.dumps(self.build_payload(title, blocks), separators=(",", ":"))
        score_json = score_json.replace("</", "<\\/")

        return f"""# {title_safe}

This Markdown uses embedded JavaScript + VexFlow. Open it in a Markdown viewer that allows script execution.

<style>
  #scoreflow-score {{
    display: grid;
    gap: 1rem;
    margin-top: 1rem;
  }}
  .scoreflow-block {{
    overflow-x: auto;
  }}
</style>

<div id="scoreflow-score"></div>
<script id="scoreflow-score-data" type="application/json">{score_json}</script>
{_VEXFLOW_SCRIPT}"""
