"""Data model for scores: measures, parts, staves, voices and notes.

Every class converts to and from the intermediate representation (IR), the
plain-dict form used in ``{"type": "document", "measures": [...]}`` data.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Final

from scoreflow import engine
from scoreflow.errors import InvalidIRError

MODIFIER_KINDS: Final[tuple[str, ...]] = ("clef", "key", "time")

DEFAULT_TIME: Final[dict[str, int]] = {"num_beats": 4, "beat_value": 4}


def time_to_string(time: str | dict[str, Any]) -> str:
    """Normalize a time descriptor to its ``"num_beats/beat_value"`` form."""
    if isinstance(time, str):
        return time
    try:
        return f"{int(time['num_beats'])}/{int(time['beat_value'])}"
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidIRError(f"Invalid time descriptor {time!r}.") from exc


@dataclass
class Modifier:
    """A clef, key signature or time signature attached to a stave."""

    kind: str
    value: str

    def __post_init__(self) -> None:
        if self.kind not in MODIFIER_KINDS:
            raise InvalidIRError(f"Unknown modifier type '{self.kind}'.")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Modifier":
        kind = data.get("type")
        if kind == "time":
            return cls("time", time_to_string(data.get("time", data)))
        if kind not in MODIFIER_KINDS or kind not in data:
            raise InvalidIRError(f"Invalid stave modifier {data!r}.")
        return cls(kind, str(data[kind]))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, self.kind: self.value}


@dataclass
class Note:
    """A single note, chord or rest token."""

    keys: list[str]
    duration: str
    accidentals: list[str | None] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Note":
        if "keys" not in data or "duration" not in data:
            raise InvalidIRError(f"Note requires keys and duration: {data!r}.")
        return cls(
            keys=list(data["keys"]),
            duration=str(data["duration"]),
            accidentals=list(data.get("accidentals", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"keys": list(self.keys), "duration": self.duration, "accidentals": list(self.accidentals)}


@dataclass
class Stave:
    """A logical stave with the clef, key and time it declares."""

    clef: str | None = None
    key: str | None = None
    time_signature: str | None = None
    time: dict[str, Any] | None = None
    modifiers: list[Modifier] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], time: dict[str, Any] | None = None) -> "Stave":
        stave = cls(
            clef=data.get("clef"),
            key=data.get("key"),
            time_signature=data.get("time_signature"),
            time=copy.deepcopy(data.get("time", time)),
        )
        for modifier in data.get("modifiers", []):
            stave.add_modifier(Modifier.from_dict(modifier))
        return stave

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in ("clef", "key", "time_signature", "time"):
            value = getattr(self, name)
            if value is not None:
                data[name] = copy.deepcopy(value)
        data["modifiers"] = [modifier.to_dict() for modifier in self.modifiers]
        return data

    def get_modifier(self, kind: str) -> Modifier | None:
        for modifier in self.modifiers:
            if modifier.kind == kind:
                return modifier
        return None

    def add_modifier(self, modifier: Modifier) -> None:
        if self.get_modifier(modifier.kind) is not None:
            raise InvalidIRError(f"Stave already has a {modifier.kind} modifier.")
        self.modifiers.append(modifier)

    def delete_modifier(self, kind: str) -> None:
        self.modifiers = [modifier for modifier in self.modifiers if modifier.kind != kind]


@dataclass
class Voice:
    """An independent rhythmic line assigned to one stave of its part."""

    notes: list[Note] = field(default_factory=list)
    stave: int | None = None
    time: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_TIME))
    beams: list[tuple[int, int]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], time: dict[str, Any] | None = None) -> "Voice":
        stave = data.get("stave")
        if stave is not None and (isinstance(stave, bool) or not isinstance(stave, int)):
            raise InvalidIRError(f"Voice stave must be a number, got {stave!r}.")
        return cls(
            notes=[Note.from_dict(note) for note in data.get("notes", [])],
            stave=stave,
            time=dict(data.get("time", time or DEFAULT_TIME)),
            beams=[(int(start), int(end)) for start, end in data.get("beams", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "time": dict(self.time),
            "notes": [note.to_dict() for note in self.notes],
        }
        if self.stave is not None:
            data["stave"] = self.stave
        if self.beams:
            data["beams"] = [list(beam) for beam in self.beams]
        return data

    def stave_index(self, num_staves: int) -> int:
        """Index of this voice's stave within a part of ``num_staves`` staves."""
        if num_staves <= 1:
            return 0
        if self.stave is None:
            raise InvalidIRError("Voice in a multi-stave part needs a stave property.")
        if not 0 <= self.stave < num_staves:
            raise InvalidIRError(f"Voice stave {self.stave} is outside its part.")
        return self.stave

    def to_engine_voice(self, staves: list[Stave]) -> engine.Voice:
        """Convert to a drawable voice, using the clef of this voice's stave."""
        clef = staves[self.stave_index(len(staves))].clef if staves else None
        voice = engine.Voice(int(self.time["num_beats"]), int(self.time["beat_value"]))
        voice.add_tickables(
            [
                engine.Note(note.keys, note.duration, note.accidentals, clef=clef or "treble")
                for note in self.notes
            ]
        )
        return voice

    def to_engine_objects(self, engine_voice: engine.Voice) -> list[engine.Beam]:
        """Auxiliary objects (beams) drawn after ``engine_voice``."""
        objects = []
        for start, end in self.beams:
            if not 0 <= start < end < len(engine_voice.tickables):
                raise InvalidIRError(f"Beam [{start}, {end}] is outside the voice.")
            objects.append(engine.Beam(engine_voice.tickables[start:end + 1]))
        return objects


@dataclass
class Part:
    """An instrument within a measure: its staves and voices."""

    staves: list[Stave] = field(default_factory=lambda: [Stave()])
    voices: list[Voice] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], time: dict[str, Any] | None = None) -> "Part":
        time = data.get("time", time)
        staves = [Stave.from_dict(stave, time) for stave in data.get("staves", [{}])]
        return cls(
            staves=staves,
            voices=[Voice.from_dict(voice, time) for voice in data.get("voices", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "staves": [stave.to_dict() for stave in self.staves],
            "voices": [voice.to_dict() for voice in self.voices],
        }

    def get_number_of_staves(self) -> int:
        return len(self.staves)

    def get_stave(self, index: int) -> Stave:
        return self.staves[index]

    def get_number_of_voices(self) -> int:
        return len(self.voices)

    def get_voice(self, index: int) -> Voice:
        return self.voices[index]


@dataclass
class Measure:
    """One measure of the score across all parts."""

    parts: list[Part] = field(default_factory=list)
    time: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_TIME))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Measure":
        if not isinstance(data, dict):
            raise InvalidIRError(f"Measure must be an object, got {type(data).__name__}.")
        time = dict(data.get("time", DEFAULT_TIME))
        return cls(
            parts=[Part.from_dict(part, time) for part in data.get("parts", [])],
            time=time,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "measure",
            "time": dict(self.time),
            "parts": [part.to_dict() for part in self.parts],
        }

    def copy(self) -> "Measure":
        return Measure.from_dict(self.to_dict())

    def get_number_of_parts(self) -> int:
        return len(self.parts)

    def get_part(self, index: int) -> Part:
        return self.parts[index]

    def get_parts(self) -> list[Part]:
        return list(self.parts)

    def get_staves(self) -> list[Stave]:
        return [stave for part in self.parts for stave in part.staves]

    def get_stave(self, index: int) -> Stave | None:
        """Stave by absolute index across all parts, or None past the end."""
        staves = self.get_staves()
        if 0 <= index < len(staves):
            return staves[index]
        return None
