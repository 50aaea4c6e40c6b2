"""Drawing engine primitives: staves, notes, voices, beams and connectors.

The primitives mirror the VexFlow API (``Stave``, ``Voice``, ``Formatter``,
``Beam``, ``StaveConnector``) with deterministic metrics, so that layout can
be computed in Python. Drawing does not rasterize anything: it records
JSON-ready commands into a :class:`RenderContext`, which the sheet renderers
turn into SVG or into a VexFlow script.
"""

from __future__ import annotations

import re
from typing import Any, Final

from scoreflow.errors import ArgumentError, FormattingError

# Ticks per whole note (VexFlow's RESOLUTION).
RESOLUTION: Final[int] = 16384

# Stave metrics, in layout units (1 unit ~ 1 px at scale 1).
LINE_SPACING: Final[int] = 10
NUM_LINES: Final[int] = 5
SPACE_ABOVE_STAFF: Final[int] = 4
STAVE_START_PADDING: Final[int] = 5
MODIFIER_PADDING: Final[int] = 10

CLEF_WIDTHS: Final[dict[str, int]] = {
    "treble": 26,
    "bass": 26,
    "alto": 26,
    "tenor": 26,
    "percussion": 14,
}

# Diatonic index (octave * 7 + step) of the bottom stave line for each clef.
CLEF_BOTTOM_LINES: Final[dict[str, int]] = {
    "treble": 30,  # E4
    "bass": 18,  # G2
    "alto": 24,  # F3
    "tenor": 22,  # D3
    "percussion": 30,
}

# Positive values are sharps, negative values are flats.
KEY_SIGNATURES: Final[dict[str, int]] = {
    "C": 0, "G": 1, "D": 2, "A": 3, "E": 4, "B": 5, "F#": 6, "C#": 7,
    "F": -1, "Bb": -2, "Eb": -3, "Ab": -4, "Db": -5, "Gb": -6, "Cb": -7,
    "Am": 0, "Em": 1, "Bm": 2, "F#m": 3, "C#m": 4, "G#m": 5, "D#m": 6, "A#m": 7,
    "Dm": -1, "Gm": -2, "Cm": -3, "Fm": -4, "Bbm": -5, "Ebm": -6, "Abm": -7,
}
KEY_ACCIDENTAL_WIDTH: Final[int] = 10

TIME_DIGIT_WIDTH: Final[int] = 12
COMMON_TIME_WIDTH: Final[int] = 18

DURATION_VALUES: Final[dict[str, int]] = {
    "w": 1, "h": 2, "q": 4, "8": 8, "16": 16, "32": 32, "64": 64,
}
NOTEHEAD_WIDTH: Final[int] = 10
WHOLE_NOTEHEAD_WIDTH: Final[int] = 16
ACCIDENTAL_WIDTH: Final[int] = 8
DOT_WIDTH: Final[int] = 5
TICK_CONTEXT_PADDING: Final[int] = 10
STEM_HEIGHT: Final[int] = 35

CONNECTOR_TYPES: Final[tuple[str, ...]] = ("single", "double", "brace", "bracket")

_STEPS: Final[str] = "cdefgab"
_DURATION_RE = re.compile(r"^(w|h|q|\d+)(d*)(r?)$")
_KEY_RE = re.compile(r"^([a-g])(##|bb|#|b|n)?/(-?\d+)$", re.IGNORECASE)
_TIME_RE = re.compile(r"^(\d+)/(\d+)$")


def parse_key(key: str) -> tuple[int, str | None, int]:
    """Split a ``"c#/4"`` style key into (step index, accidental, octave)."""
    match = _KEY_RE.match(key.strip())
    if not match:
        raise ArgumentError(f"Invalid note key '{key}'.")
    step = _STEPS.index(match.group(1).lower())
    accidental = match.group(2).lower() if match.group(2) else None
    return step, accidental, int(match.group(3))


def time_signature_width(time_signature: str) -> int:
    if time_signature in ("C", "C|"):
        return COMMON_TIME_WIDTH
    match = _TIME_RE.match(time_signature.strip())
    if not match:
        raise ArgumentError(f"Invalid time signature '{time_signature}'.")
    digits = max(len(match.group(1)), len(match.group(2)))
    return TIME_DIGIT_WIDTH * digits


class RenderContext:
    """Collects draw commands for one block."""

    def __init__(self, width: float = 0, height: float = 0) -> None:
        self.width = width
        self.height = height
        self.commands: list[dict[str, Any]] = []

    def resize(self, width: float, height: float) -> "RenderContext":
        self.width = width
        self.height = height
        return self

    def add(self, kind: str, **attrs: Any) -> int:
        """Record a command and return its index."""
        self.commands.append({"kind": kind, **attrs})
        return len(self.commands) - 1

    def commands_of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [command for command in self.commands if command["kind"] == kind]


class Stave:
    """A five-line stave placed at (x, y) with a fixed width."""

    def __init__(self, x: float, y: float, width: float) -> None:
        self.x = x
        self.y = y
        self.width = width
        self.modifiers: list[tuple[str, str, int]] = []
        self.context: RenderContext | None = None
        self.command_index: int | None = None

    def add_clef(self, clef: str) -> "Stave":
        if clef not in CLEF_WIDTHS:
            raise ArgumentError(f"Unsupported clef '{clef}'.")
        self.modifiers.append(("clef", clef, CLEF_WIDTHS[clef]))
        return self

    def set_clef(self, clef: str) -> "Stave":
        """Replace the clef shown on this stave, adding it in front if there is none."""
        if clef not in CLEF_WIDTHS:
            raise ArgumentError(f"Unsupported clef '{clef}'.")
        entry = ("clef", clef, CLEF_WIDTHS[clef])
        for idx, (kind, _value, _width) in enumerate(self.modifiers):
            if kind == "clef":
                self.modifiers[idx] = entry
                return self
        self.modifiers.insert(0, entry)
        return self

    def add_key_signature(self, key: str) -> "Stave":
        if key not in KEY_SIGNATURES:
            raise ArgumentError(f"Unsupported key signature '{key}'.")
        self.modifiers.append(("key", key, abs(KEY_SIGNATURES[key]) * KEY_ACCIDENTAL_WIDTH))
        return self

    def add_time_signature(self, time_signature: str) -> "Stave":
        self.modifiers.append(("time", time_signature, time_signature_width(time_signature)))
        return self

    def get_height(self) -> int:
        return (NUM_LINES + SPACE_ABOVE_STAFF) * LINE_SPACING

    def get_y_for_line(self, line: float) -> float:
        """Y coordinate of a stave line, line 0 being the top line."""
        return self.y + (SPACE_ABOVE_STAFF + line) * LINE_SPACING

    def get_y_for_key(self, key: str, clef: str) -> float:
        step, _accidental, octave = parse_key(key)
        position = octave * 7 + step - CLEF_BOTTOM_LINES[clef]
        return self.get_y_for_line(NUM_LINES - 1) - position * LINE_SPACING / 2

    def get_note_start_x(self) -> float:
        start_x = self.x + STAVE_START_PADDING
        for _kind, _value, width in self.modifiers:
            if width > 0:
                start_x += width + MODIFIER_PADDING
        return start_x

    def get_note_end_x(self) -> float:
        return self.x + self.width

    def set_context(self, context: RenderContext) -> "Stave":
        self.context = context
        return self

    def draw(self) -> None:
        if self.context is None:
            raise FormattingError("Stave has no rendering context.")
        modifiers = []
        cursor = self.x + STAVE_START_PADDING
        for kind, value, width in self.modifiers:
            if width <= 0:
                continue
            modifiers.append({"type": kind, "value": value, "x": cursor})
            cursor += width + MODIFIER_PADDING
        self.command_index = self.context.add(
            "stave",
            x=self.x,
            y=self.y,
            width=self.width,
            top_line_y=self.get_y_for_line(0),
            line_spacing=LINE_SPACING,
            num_lines=NUM_LINES,
            modifiers=modifiers,
            note_start_x=self.get_note_start_x(),
            note_end_x=self.get_note_end_x(),
        )


class Note:
    """A note, chord or rest occupying a single tick position."""

    def __init__(
        self,
        keys: list[str],
        duration: str,
        accidentals: list[str | None] | None = None,
        clef: str = "treble",
    ) -> None:
        match = _DURATION_RE.match(duration)
        if not match or match.group(1) not in DURATION_VALUES:
            raise ArgumentError(f"Unsupported duration '{duration}'.")
        if not keys:
            raise ArgumentError("A note requires at least one key.")
        if clef not in CLEF_BOTTOM_LINES:
            raise ArgumentError(f"Unsupported clef '{clef}'.")
        for key in keys:
            parse_key(key)
        self.keys = list(keys)
        self.duration = duration
        self.base = match.group(1)
        self.dots = len(match.group(2))
        self.is_rest = bool(match.group(3))
        self.accidentals = list(accidentals or [])
        self.clef = clef
        self.x_offset = 0.0
        # Filled in when drawn.
        self.abs_x: float | None = None
        self.stem: dict[str, float] | None = None
        self.voice_command: int | None = None
        self.index_in_voice: int | None = None

    @property
    def ticks(self) -> int:
        ticks = addition = RESOLUTION // DURATION_VALUES[self.base]
        for _ in range(self.dots):
            addition //= 2
            ticks += addition
        return ticks

    @property
    def head_width(self) -> int:
        return WHOLE_NOTEHEAD_WIDTH if self.base == "w" else NOTEHEAD_WIDTH

    def get_min_width(self) -> int:
        num_accidentals = len([a for a in self.accidentals if a])
        return self.head_width + ACCIDENTAL_WIDTH * num_accidentals + DOT_WIDTH * self.dots

    def draw(self, stave: Stave) -> dict[str, Any]:
        """Position the note on ``stave`` and return its command payload."""
        x = stave.get_note_start_x() + self.x_offset
        if self.is_rest:
            heads = [{"y": stave.get_y_for_line(2), "accidental": None}]
        else:
            heads = []
            for idx, key in enumerate(self.keys):
                accidental = self.accidentals[idx] if idx < len(self.accidentals) else None
                heads.append({"y": stave.get_y_for_key(key, self.clef), "accidental": accidental})
        self.abs_x = x
        self.stem = None
        if not self.is_rest and self.base != "w":
            head_ys = [head["y"] for head in heads]
            self.stem = {
                "x": x + self.head_width,
                "y1": min(head_ys) - STEM_HEIGHT,
                "y2": max(head_ys),
            }
        return {
            "keys": self.keys,
            "duration": self.duration,
            "accidentals": self.accidentals,
            "clef": self.clef,
            "rest": self.is_rest,
            "x": x,
            "heads": heads,
            "stem": self.stem,
        }


class Voice:
    """A sequence of notes laid end to end in time."""

    def __init__(self, num_beats: int = 4, beat_value: int = 4) -> None:
        if num_beats <= 0 or beat_value <= 0:
            raise ArgumentError(f"Invalid voice time {num_beats}/{beat_value}.")
        self.num_beats = num_beats
        self.beat_value = beat_value
        self.tickables: list[Note] = []
        self.tick_offsets: list[int] = []

    @property
    def total_ticks(self) -> int:
        return self.num_beats * RESOLUTION // self.beat_value

    @property
    def ticks_used(self) -> int:
        if not self.tickables:
            return 0
        return self.tick_offsets[-1] + self.tickables[-1].ticks

    def add_tickables(self, notes: list[Note]) -> "Voice":
        offset = self.ticks_used
        for note in notes:
            self.tickables.append(note)
            self.tick_offsets.append(offset)
            offset += note.ticks
        return self

    def draw(self, context: RenderContext, stave: Stave) -> None:
        if stave.command_index is None:
            raise FormattingError("Voice drawn on a stave that has not been drawn.")
        payloads = [note.draw(stave) for note in self.tickables]
        voice_command = context.add(
            "voice",
            stave=stave.command_index,
            num_beats=self.num_beats,
            beat_value=self.beat_value,
            notes=payloads,
        )
        for idx, note in enumerate(self.tickables):
            note.voice_command = voice_command
            note.index_in_voice = idx


class VoiceFormatter:
    """Aligns simultaneous notes of several voices and spaces them out."""

    def __init__(self) -> None:
        self.min_total_width: float = 0
        self.joined: list[list[Voice]] = []

    def join_voices(self, voices: list[Voice]) -> "VoiceFormatter":
        self.joined.append(list(voices))
        return self

    @staticmethod
    def _tick_contexts(voices: list[Voice]) -> list[tuple[int, list[Note]]]:
        contexts: dict[int, list[Note]] = {}
        for voice in voices:
            for offset, note in zip(voice.tick_offsets, voice.tickables):
                contexts.setdefault(offset, []).append(note)
        return sorted(contexts.items())

    @staticmethod
    def _context_width(notes: list[Note]) -> int:
        return max(note.get_min_width() for note in notes) + TICK_CONTEXT_PADDING

    def pre_calculate_min_total_width(self, voices: list[Voice]) -> float:
        """Minimum width needed to typeset ``voices`` with no slack."""
        self.min_total_width = sum(
            self._context_width(notes) for _, notes in self._tick_contexts(voices)
        )
        return self.min_total_width

    def format(self, voices: list[Voice], justify_width: float) -> "VoiceFormatter":
        """
        Assign each note an x offset so the voices fill ``justify_width``.

        Width beyond the minimum is handed out in proportion to each tick
        position, so notes later in the measure move further right.
        """
        contexts = self._tick_contexts(voices)
        min_total = self.pre_calculate_min_total_width(voices)
        total_ticks = max((max(v.total_ticks, v.ticks_used) for v in voices), default=0)
        extra = max(0.0, justify_width - min_total)

        x = 0.0
        for offset, notes in contexts:
            shift = extra * offset / total_ticks if total_ticks else 0.0
            for note in notes:
                note.x_offset = x + shift
            x += self._context_width(notes)
        return self


class Beam:
    """Beam joining the stems of consecutive notes of one voice."""

    def __init__(self, notes: list[Note]) -> None:
        if len(notes) < 2:
            raise ArgumentError("A beam needs at least two notes.")
        self.notes = list(notes)
        self.context: RenderContext | None = None

    def set_context(self, context: RenderContext) -> "Beam":
        self.context = context
        return self

    def draw(self) -> None:
        if self.context is None:
            raise FormattingError("Beam has no rendering context.")
        stems = [note.stem for note in self.notes if note.stem is not None]
        if any(note.voice_command is None for note in self.notes) or not stems:
            raise FormattingError("Beam drawn before its notes.")
        first, last = self.notes[0], self.notes[-1]
        self.context.add(
            "beam",
            voice=first.voice_command,
            start=first.index_in_voice,
            end=last.index_in_voice,
            x1=stems[0]["x"],
            x2=stems[-1]["x"],
            y=min(stem["y1"] for stem in stems),
        )


class StaveConnector:
    """Line or brace connecting the left edges of two staves."""

    def __init__(self, top: Stave, bottom: Stave) -> None:
        self.top = top
        self.bottom = bottom
        self.type = "single"
        self.context: RenderContext | None = None

    def set_type(self, connector_type: str) -> "StaveConnector":
        if connector_type not in CONNECTOR_TYPES:
            raise ArgumentError(f"Unsupported connector type '{connector_type}'.")
        self.type = connector_type
        return self

    def set_context(self, context: RenderContext) -> "StaveConnector":
        self.context = context
        return self

    def draw(self) -> None:
        if self.context is None:
            raise FormattingError("Connector has no rendering context.")
        self.context.add(
            "connector",
            type=self.type,
            top=self.top.command_index,
            bottom=self.bottom.command_index,
            x=self.top.x,
            y1=self.top.get_y_for_line(0),
            y2=self.bottom.get_y_for_line(NUM_LINES - 1),
        )
