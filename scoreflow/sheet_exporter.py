"""ScoreExporter: lays out a score file and writes it as HTML or Markdown."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Final

from scoreflow.document import Document
from scoreflow.engine import RenderContext
from scoreflow.errors import ParseError
from scoreflow.liquid_formatter import LiquidFormatter
from scoreflow.sheet_renderers import SheetRenderer, SvgHtmlRenderer, VexflowMarkdownRenderer

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS: Final[set[str]] = {"html", "md-vexflow"}

MIDI_SUFFIXES: Final[set[str]] = {".mid", ".midi"}


class ScoreExporter:
    """
    Lay out a score with the liquid formatter and render it.

    Input files may be IR JSON (``.json``), MusicXML, or MIDI (converted to
    MusicXML with music21). Supported output formats:

    - ``html``: one inline SVG per line of music in a self-contained HTML file.
    - ``md-vexflow``: markdown file with an embedded VexFlow JavaScript renderer.
    """

    def __init__(self, title: str = "", output_format: str = "html", width: int = 500) -> None:
        self.title = title
        normalized = output_format.strip().lower()
        if normalized not in SUPPORTED_FORMATS:
            supported = ", ".join(sorted(SUPPORTED_FORMATS))
            raise ValueError(f"Unsupported output format '{output_format}'. Use one of: {supported}.")
        self.output_format = normalized
        self.width = width
        self.renderer = self._build_renderer(normalized)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_renderer(self, output_format: str) -> SheetRenderer:
        if output_format == "html":
            return SvgHtmlRenderer()
        return VexflowMarkdownRenderer()

    def _midi_to_musicxml(self, path: Path) -> bytes:
        """
        Convert a MIDI file to MusicXML bytes for the MusicXML backend.

        Tracks without notes (tempo or controller tracks) would become blank
        staves, so only parts holding notes are kept.

        Raises:
            ParseError: If music21 cannot read the file or it holds no notes.
        """
        from music21 import converter, stream
        from music21.exceptions21 import Music21Exception
        from music21.musicxml.m21ToXml import GeneralObjectExporter

        try:
            midi_score = converter.parse(str(path), format="midi")
        except Music21Exception as exc:
            raise ParseError(f"Could not read MIDI file {path}: {exc}") from exc

        score = stream.Score()
        for part in midi_score.parts:
            if part.flatten().notes:
                score.insert(0, part)
        if not score.parts:
            raise ParseError(f"MIDI file {path} contains no notes.")
        logger.debug(
            "Converted %s: %d of %d part(s) hold notes", path, len(score.parts), len(midi_score.parts)
        )
        return GeneralObjectExporter(score).parse()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_document(self, input_path: str) -> Document:
        """
        Read a score file into a Document.

        Raises:
            ParseError: If the file content is not a supported score format.
            OSError: If the file cannot be read.
        """
        path = Path(input_path)
        suffix = path.suffix.lower()
        if suffix == ".json":
            with open(path, encoding="utf-8") as fh:
                data: Any = json.load(fh)
        elif suffix in MIDI_SUFFIXES:
            data = self._midi_to_musicxml(path)
        else:
            data = path.read_bytes()
        logger.debug("Loaded %s as %s input", path, suffix or "raw")
        return Document(data)

    def layout(self, document: Document) -> list[RenderContext]:
        """Break the document into lines and draw each line on its own context."""
        formatter = document.get_formatter(LiquidFormatter).set_width(self.width)
        contexts = []
        for block in formatter.blocks():
            context = RenderContext(block.width, block.height)
            formatter.draw_block(block.index, context)
            contexts.append(context)
        logger.debug("Laid out %d block(s) at width %s", len(contexts), self.width)
        return contexts

    def export(self, input_path: str, output_path: str) -> None:
        """
        Lay out a score file and write it in the selected format.

        Raises:
            ScoreflowError: If the score cannot be parsed or laid out.
            OSError: If a file cannot be read or written.
        """
        document = self.load_document(input_path)
        content = self.renderer.render(title=self.title, blocks=self.layout(document))

        with open(output_path, "w", encoding="utf-8") as fh:
            fh.write(content)
