"""Backends: adapters that turn raw score data into Measure objects."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Final
from xml.etree.ElementTree import ParseError as XMLParseError

from scoreflow.errors import ArgumentError, ParseError
from scoreflow.score_models import DEFAULT_TIME, Measure, Note, Part, Stave, Voice


class Backend(ABC):
    """Abstract backend: recognizes, parses and serves measures of one format."""

    def __init__(self) -> None:
        self.valid = False

    @staticmethod
    @abstractmethod
    def appears_valid(data: Any) -> bool:
        """Return True if ``data`` looks like this backend's format."""

    @abstractmethod
    def parse(self, data: Any) -> None:
        """Load ``data``; raise or leave the backend invalid on failure."""

    def is_valid(self) -> bool:
        return self.valid

    @abstractmethod
    def get_number_of_measures(self) -> int:
        """Total number of measures in the parsed data."""

    @abstractmethod
    def get_measure(self, i: int) -> Measure:
        """Create the ith measure (zero-indexed)."""


class IRBackend(Backend):
    """
    Serve measures from the intermediate representation.

    Accepts either an IR mapping (``{"type": "document", "measures": [...]}``)
    or an existing document object. Measures are always returned as fresh
    copies, so callers may mutate them freely.
    """

    def __init__(self) -> None:
        super().__init__()
        self.document_object: Any = None

    @staticmethod
    def appears_valid(data: Any) -> bool:
        if isinstance(data, Mapping):
            return data.get("type") == "document"
        return (
            getattr(data, "type", None) == "document"
            and callable(getattr(data, "get_number_of_measures", None))
            and callable(getattr(data, "get_measure", None))
        )

    def parse(self, data: Any) -> None:
        if not self.appears_valid(data):
            raise ArgumentError("IR object must be a valid document.")
        if isinstance(data, Mapping):
            self.valid = isinstance(data.get("measures"), list)
        else:
            # Force a document object to materialize all of its measures.
            for i in range(data.get_number_of_measures()):
                data.get_measure(i)
            self.valid = True
        self.document_object = data

    def get_number_of_measures(self) -> int:
        if isinstance(self.document_object, Mapping):
            return len(self.document_object["measures"])
        return self.document_object.get_number_of_measures()

    def get_measure(self, i: int) -> Measure:
        if i < 0:
            raise IndexError(f"Measure index {i} out of range.")
        if isinstance(self.document_object, Mapping):
            return Measure.from_dict(self.document_object["measures"][i])
        return self.document_object.get_measure(i).copy()


class MusicXMLBackend(Backend):
    """
    Serve measures from MusicXML text, parsed with music21.

    Parts that music21 imports as ``PartStaff`` objects of one staff group
    (a piano grand staff, for instance) are merged into one multi-stave part.
    """

    _SNIFF_BYTES: Final[int] = 4096
    _ROOT_RE = re.compile(rb"<(!DOCTYPE\s+)?score-(partwise|timewise)\b")

    # music21 duration types and their engine duration codes.
    _DURATION_CODES: Final[dict[str, str]] = {
        "whole": "w",
        "half": "h",
        "quarter": "q",
        "eighth": "8",
        "16th": "16",
        "32nd": "32",
        "64th": "64",
    }

    # Semitone alteration -> accidental shown on the note.
    _ALTER_ACCIDENTALS: Final[dict[int, str]] = {2: "##", 1: "#", -1: "b", -2: "bb"}

    _CLEFS: Final[dict[tuple[str, int], str]] = {
        ("G", 2): "treble",
        ("F", 4): "bass",
        ("C", 3): "alto",
        ("C", 4): "tenor",
    }

    _SHARPS_TO_KEY: Final[dict[int, str]] = {
        0: "C", 1: "G", 2: "D", 3: "A", 4: "E", 5: "B", 6: "F#", 7: "C#",
        -1: "F", -2: "Bb", -3: "Eb", -4: "Ab", -5: "Db", -6: "Gb", -7: "Cb",
    }

    _REST_KEYS: Final[dict[str, str]] = {
        "treble": "b/4",
        "bass": "d/3",
        "alto": "c/4",
        "tenor": "a/3",
        "percussion": "b/4",
    }

    def __init__(self) -> None:
        super().__init__()
        # part group -> stave -> music21 measures
        self._groups: list[list[list[Any]]] = []

    @staticmethod
    def appears_valid(data: Any) -> bool:
        if isinstance(data, str):
            head = data[: MusicXMLBackend._SNIFF_BYTES].encode("utf-8", "ignore")
        elif isinstance(data, (bytes, bytearray)):
            head = bytes(data[: MusicXMLBackend._SNIFF_BYTES])
        else:
            return False
        head = head.lstrip(b"\xef\xbb\xbf").lstrip()
        return head.startswith(b"<") and bool(MusicXMLBackend._ROOT_RE.search(head))

    def parse(self, data: Any) -> None:
        from music21 import converter
        from music21.exceptions21 import Music21Exception

        try:
            text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
            score = converter.parseData(text, format="musicxml")
        except (Music21Exception, XMLParseError, UnicodeDecodeError) as exc:
            raise ParseError(f"Could not parse MusicXML data: {exc}") from exc

        self._groups = [
            [self._extract_measures(part) for part in group]
            for group in self._group_parts(score)
        ]
        self.valid = bool(self._groups)

    def get_number_of_measures(self) -> int:
        return max(
            (len(measures) for group in self._groups for measures in group),
            default=0,
        )

    def get_measure(self, i: int) -> Measure:
        if not 0 <= i < self.get_number_of_measures():
            raise IndexError(f"Measure index {i} out of range.")

        parts: list[Part] = []
        measure_time: dict[str, int] | None = None
        for group in self._groups:
            staves: list[Stave] = []
            voices: list[Voice] = []
            for stave_index, measures in enumerate(group):
                m21_measure = measures[i] if i < len(measures) else None
                stave = self._measure_to_stave(m21_measure)
                time = stave.time or dict(DEFAULT_TIME)
                measure_time = measure_time or time
                staves.append(stave)
                voices.extend(
                    self._measure_to_voices(m21_measure, stave.clef or "treble", stave_index, time)
                )
            parts.append(Part(staves=staves, voices=voices))
        return Measure(parts=parts, time=measure_time or dict(DEFAULT_TIME))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _group_parts(self, score: Any) -> list[list[Any]]:
        """Group score parts so each group becomes one Part."""
        from music21 import stream

        group_of: dict[int, int] = {}
        for staff_group in score.spannerBundle.getByClass("StaffGroup"):
            for member in staff_group.getSpannedElements():
                if isinstance(member, stream.PartStaff):
                    group_of.setdefault(id(member), id(staff_group))

        groups: list[list[Any]] = []
        seen: dict[int, list[Any]] = {}
        for part in score.parts:
            group_id = group_of.get(id(part))
            if group_id is None:
                groups.append([part])
            elif group_id in seen:
                seen[group_id].append(part)
            else:
                seen[group_id] = [part]
                groups.append(seen[group_id])
        return groups

    def _extract_measures(self, part: Any) -> list[Any]:
        measures = list(part.getElementsByClass("Measure"))
        if not measures:
            measures = list(part.makeMeasures().getElementsByClass("Measure"))
        return measures

    def _measure_to_stave(self, m21_measure: Any | None) -> Stave:
        if m21_measure is None:
            return Stave(clef="treble", time=dict(DEFAULT_TIME))

        clef_obj = m21_measure.clef or m21_measure.getContextByClass("Clef")
        key_obj = m21_measure.keySignature or m21_measure.getContextByClass("KeySignature")
        time_obj = m21_measure.timeSignature or m21_measure.getContextByClass("TimeSignature")

        stave = Stave(clef=self._clef_name(clef_obj))
        if key_obj is not None:
            stave.key = self._SHARPS_TO_KEY.get(int(key_obj.sharps))
        if time_obj is not None:
            stave.time = {"num_beats": int(time_obj.numerator), "beat_value": int(time_obj.denominator)}
            symbol = getattr(time_obj, "symbol", None)
            if symbol == "common":
                stave.time_signature = "C"
            elif symbol == "cut":
                stave.time_signature = "C|"
        return stave

    def _clef_name(self, clef_obj: Any | None) -> str:
        if clef_obj is None:
            return "treble"
        sign = getattr(clef_obj, "sign", None)
        if sign == "percussion":
            return "percussion"
        line = getattr(clef_obj, "line", None)
        if (sign, line) in self._CLEFS:
            return self._CLEFS[(sign, line)]
        return {"F": "bass", "C": "alto"}.get(sign, "treble")

    def _measure_to_voices(
        self,
        m21_measure: Any | None,
        clef: str,
        stave_index: int,
        time: dict[str, int],
    ) -> list[Voice]:
        if m21_measure is None:
            return [Voice(notes=[self._default_rest(clef)], stave=stave_index, time=dict(time))]

        streams = list(m21_measure.voices) or [m21_measure]
        voices = []
        for voice_stream in streams:
            elements = list(voice_stream.notesAndRests)
            notes = [self._element_to_note(element, clef) for element in elements]
            voices.append(
                Voice(
                    notes=notes or [self._default_rest(clef)],
                    stave=stave_index,
                    time=dict(time),
                    beams=self._extract_beams(elements) if notes else [],
                )
            )
        return voices

    def _element_to_note(self, element: Any, clef: str) -> Note:
        from music21 import chord

        duration = self._duration_code(element.duration)

        if element.isRest:
            return Note(keys=[self._REST_KEYS[clef]], duration=f"{duration}r", accidentals=[None])

        heads = list(element.notes) if isinstance(element, chord.ChordBase) else [element]
        keys, accidentals = zip(*(self._head_key(head) for head in heads))
        return Note(keys=list(keys), duration=duration, accidentals=list(accidentals))

    def _extract_beams(self, elements: list[Any]) -> list[tuple[int, int]]:
        beams: list[tuple[int, int]] = []
        start: int | None = None
        for idx, element in enumerate(elements):
            if element.isRest or not len(element.beams):
                continue
            beam_type = element.beams.getTypeByNumber(1)
            if beam_type == "start":
                start = idx
            elif beam_type == "stop" and start is not None:
                beams.append((start, idx))
                start = None
        return beams

    def _default_rest(self, clef: str) -> Note:
        return Note(keys=[self._REST_KEYS[clef]], duration="wr", accidentals=[None])

    def _duration_code(self, duration: Any) -> str:
        """Engine duration code of a music21 duration.

        Tied (complex) durations are shown with their first component.
        """
        if duration.type not in self._DURATION_CODES and duration.components:
            duration = duration.components[0]
        code = self._DURATION_CODES.get(duration.type)
        if code is None:
            return "w" if duration.quarterLength >= 4 else "64"
        return code + "d" * duration.dots

    def _head_key(self, head: Any) -> tuple[str, str | None]:
        """Key (``"f#/4"``) and shown accidental of one note head.

        Unpitched percussion heads use their display position on the stave.
        """
        from music21 import note

        if isinstance(head, note.Unpitched):
            return f"{head.displayStep.lower()}/{head.displayOctave}", None

        pitch = head.pitch
        alteration = self._ALTER_ACCIDENTALS.get(int(pitch.alter), "")
        key = f"{pitch.step.lower()}{alteration}/{pitch.implicitOctave}"
        if pitch.accidental is not None and pitch.accidental.name == "natural":
            return key, "n"
        return key, alteration or None


# Backends tried, in order, when a document is created.
BACKENDS: Final[tuple[type[Backend], ...]] = (IRBackend, MusicXMLBackend)
