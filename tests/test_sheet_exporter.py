"""Unit tests for ScoreExporter: loading, layout and writing."""

import json

import pytest

from scoreflow.backends import IRBackend, MusicXMLBackend
from scoreflow.errors import ParseError
from scoreflow.sheet_exporter import ScoreExporter


@pytest.fixture
def ir_file(tmp_path, quarter_measure, grand_staff_measure):
    path = tmp_path / "little_song.json"
    measures = [quarter_measure(), quarter_measure(("g/4", "f/4", "e/4", "d/4")), grand_staff_measure()]
    path.write_text(json.dumps({"type": "document", "measures": measures}), encoding="utf-8")
    return path


def test_unsupported_format_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported output format"):
        ScoreExporter(output_format="pdf")


def test_format_is_normalized() -> None:
    exporter = ScoreExporter(output_format=" MD-VexFlow ")
    assert exporter.output_format == "md-vexflow"
    assert exporter.renderer.default_extension == ".md"


def test_load_json_document(ir_file) -> None:
    document = ScoreExporter().load_document(str(ir_file))
    assert isinstance(document.backend, IRBackend)
    assert document.get_number_of_measures() == 3


def test_load_unknown_bytes_is_a_parse_error(tmp_path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("just some notes", encoding="utf-8")
    with pytest.raises(ParseError):
        ScoreExporter().load_document(str(path))


def test_layout_draws_every_block(ir_file) -> None:
    exporter = ScoreExporter(width=200)
    contexts = exporter.layout(exporter.load_document(str(ir_file)))

    assert len(contexts) >= 2
    assert all(context.commands_of_kind("stave") for context in contexts)
    assert sum(len(context.commands_of_kind("voice")) for context in contexts) == 4


def test_export_html(ir_file, tmp_path) -> None:
    output = tmp_path / "out.html"
    ScoreExporter(title="Little Song").export(str(ir_file), str(output))

    html = output.read_text(encoding="utf-8")
    assert "<h1>Little Song</h1>" in html
    assert '<div class="block">' in html
    assert "<svg " in html


def test_export_markdown(ir_file, tmp_path) -> None:
    output = tmp_path / "out.md"
    ScoreExporter(title="Little Song", output_format="md-vexflow").export(str(ir_file), str(output))

    content = output.read_text(encoding="utf-8")
    assert content.startswith("# Little Song")
    assert '"kind":"voice"' in content


@pytest.mark.integration
def test_load_midi_through_musicxml(tmp_path) -> None:
    music21 = pytest.importorskip("music21")
    score = music21.stream.Score()
    part = music21.stream.Part()
    for pitch in ("C4", "E4", "G4", "C5"):
        part.append(music21.note.Note(pitch, quarterLength=1.0))
    score.insert(0, part)
    score.insert(0, music21.stream.Part())
    midi_path = tmp_path / "arpeggio.mid"
    score.write("midi", fp=str(midi_path))

    document = ScoreExporter().load_document(str(midi_path))
    assert isinstance(document.backend, MusicXMLBackend)
    assert document.get_number_of_measures() >= 1
    keys = [note.keys[0] for note in document.get_measure(0).get_part(0).get_voice(0).notes]
    assert keys[:4] == ["c/4", "e/4", "g/4", "c/5"]


@pytest.mark.integration
def test_midi_without_notes_raises_parse_error(tmp_path) -> None:
    music21 = pytest.importorskip("music21")
    part = music21.stream.Part()
    part.append(music21.note.Rest(quarterLength=4.0))
    score = music21.stream.Score()
    score.insert(0, part)
    midi_path = tmp_path / "silence.mid"
    score.write("midi", fp=str(midi_path))

    with pytest.raises(ParseError):
        ScoreExporter().load_document(str(midi_path))
