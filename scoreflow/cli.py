"""scoreflow CLI entry point."""

import json
import logging
import sys
from pathlib import Path

import click

from scoreflow import __version__
from scoreflow.errors import ScoreflowError

DEFAULT_WIDTH = 500


def _fail(message: str) -> None:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="scoreflow")
@click.option("--verbose", "-v", is_flag=True, help="Log layout decisions to stderr.")
def main(verbose: bool) -> None:
    """scoreflow — lay out music scores line by line and render them."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


# ── render subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination file path. Defaults to extension based on --format.",
)
@click.option(
    "--title",
    default=None,
    metavar="TEXT",
    help="Title shown in the output header. Defaults to the input filename stem.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["html", "md-vexflow"], case_sensitive=False),
    default="html",
    show_default=True,
    help="Output format: self-contained HTML with SVG, or Markdown with VexFlow script.",
)
@click.option(
    "--width",
    type=click.IntRange(min=1),
    default=DEFAULT_WIDTH,
    show_default=True,
    help="Target line width in layout units.",
)
def render(
    input_file: str,
    output: str | None,
    title: str | None,
    output_format: str,
    width: int,
) -> None:
    """
    Lay out a score and render it as HTML or Markdown.

    INPUT_FILE is an IR JSON document, a MusicXML file or a MIDI file.

    \b
    Examples:
      scoreflow render song.musicxml
      scoreflow render song.json -o song.html --title "My Song" --width 800
      scoreflow render song.mid --format md-vexflow -o song.md
    """
    from scoreflow.sheet_exporter import ScoreExporter

    input_path = Path(input_file)
    resolved_title = title if title is not None else input_path.stem.replace("_", " ")
    normalized_format = output_format.lower()
    default_suffix = ".html" if normalized_format == "html" else ".md"
    resolved_output = output if output is not None else str(input_path.with_suffix(default_suffix))

    click.echo(f"scoreflow v{__version__}")
    click.echo(f"  Input  : {input_file}")
    click.echo(f"  Format : {normalized_format}  |  Width: {width}")
    click.echo(f"  Output : {resolved_output}")
    click.echo()

    exporter = ScoreExporter(title=resolved_title, output_format=normalized_format, width=width)
    try:
        exporter.export(input_file, resolved_output)
    except OSError as exc:
        _fail(f"Could not write output file — {exc}")
    except (ScoreflowError, ValueError) as exc:
        _fail(f"Could not render score — {exc}")

    click.echo(f"Done!  Wrote '{resolved_output}'.")


# ── layout subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--width",
    type=click.IntRange(min=1),
    default=DEFAULT_WIDTH,
    show_default=True,
    help="Target line width in layout units.",
)
def layout(input_file: str, width: int) -> None:
    """
    Print the line breaks and measure geometry of a score.

    One line per block, followed by the x offset and width of its measures.
    """
    from scoreflow.liquid_formatter import LiquidFormatter
    from scoreflow.sheet_exporter import ScoreExporter

    try:
        document = ScoreExporter(width=width).load_document(input_file)
        formatter = document.get_formatter(LiquidFormatter).set_width(width)
        for block in formatter.blocks():
            click.echo(
                f"block {block.index}: measures {block.first_measure}-{block.last_measure}  "
                f"size {block.width:g}x{block.height:g}"
            )
            for m in block.measures:
                click.echo(
                    f"  measure {m:<4} x={formatter.get_stave_x(m, 0):<8g} "
                    f"width={formatter.get_stave_width(m, 0):g}"
                )
    except OSError as exc:
        _fail(f"Could not read score — {exc}")
    except (ScoreflowError, ValueError) as exc:
        _fail(f"Could not lay out score — {exc}")


# ── convert subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination JSON file. Defaults to the input path with a .json suffix.",
)
def convert(input_file: str, output: str | None) -> None:
    """Convert a MusicXML or MIDI file into the IR JSON document format."""
    from scoreflow.sheet_exporter import ScoreExporter

    resolved_output = output if output is not None else str(Path(input_file).with_suffix(".json"))
    if Path(resolved_output).resolve() == Path(input_file).resolve():
        _fail("Output path would overwrite the input file.")

    try:
        document = ScoreExporter().load_document(input_file)
        with open(resolved_output, "w", encoding="utf-8") as fh:
            json.dump(document.to_dict(), fh, indent=2)
    except OSError as exc:
        _fail(f"Could not convert score — {exc}")
    except (ScoreflowError, ValueError) as exc:
        _fail(f"Could not read score — {exc}")

    click.echo(f"Done!  Wrote '{resolved_output}'.")
