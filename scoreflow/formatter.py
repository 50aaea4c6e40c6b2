"""Formatter: abstract base that lays out and draws a document in blocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from scoreflow import engine
from scoreflow.cache import GeometryCache
from scoreflow.document import Document
from scoreflow.errors import ArgumentError, FormattingError, MethodNotImplemented
from scoreflow.score_models import Modifier, Part, Stave, time_to_string

if TYPE_CHECKING:
    from scoreflow.liquid_formatter import Block


@dataclass(frozen=True)
class BlockOptions:
    """
    Drawing options of a measure.

    * ``system_start``: first measure of a line; clef and key are shown and
      all staves are connected.
    * ``piece_start``: first measure of the piece; the time signature is
      shown as well.
    """

    system_start: bool = False
    piece_start: bool = False


@dataclass
class MeasureVoices:
    """Drawable voices of a measure, with their objects and absolute staves."""

    voices: list[engine.Voice] = field(default_factory=list)
    objects: list[list[engine.Beam]] = field(default_factory=list)
    staves: list[int] = field(default_factory=list)


class Formatter:
    """
    Abstract document formatter.

    Measures are grouped into blocks (a line of music, for instance), each of
    which is drawn on its own context. A layout policy subclass decides the
    blocks and supplies the geometry primitives ``get_block``,
    ``get_stave_x`` and ``get_stave_width``; it may override ``get_stave_y``.
    Everything computed here is cached for the lifetime of the formatter.
    """

    DEFAULT_OPTIONS: dict[str, Any] = {"trial_width": 500}

    def __init__(self, document: Document, options: dict[str, Any] | None = None) -> None:
        if not isinstance(document, Document):
            raise ArgumentError("Formatter requires a Document argument.")
        self.document = document
        self.options = {**self.DEFAULT_OPTIONS, **(options or {})}

        self._staves: GeometryCache[tuple[int, int], engine.Stave | None] = GeometryCache("stave")
        self._voices: GeometryCache[int, MeasureVoices] = GeometryCache("voices of measure")
        self._min_widths: GeometryCache[int, float] = GeometryCache("minimum width of measure")
        self.measure_options: GeometryCache[int, BlockOptions] = GeometryCache("options of measure")

    # ------------------------------------------------------------------
    # Layout policy primitives
    # ------------------------------------------------------------------

    def get_block(self, b: int) -> Block | None:
        raise MethodNotImplemented(f"{type(self).__name__} must implement get_block.")

    def get_stave_x(self, m: int, s: int) -> float:
        raise MethodNotImplemented(f"{type(self).__name__} must implement get_stave_x.")

    def get_stave_width(self, m: int, s: int) -> float:
        raise MethodNotImplemented(f"{type(self).__name__} must implement get_stave_width.")

    def get_stave_y(self, m: int, s: int) -> float:
        """Stack staves downwards from 0, each below the one above it."""
        if s == 0:
            return 0
        higher = self.get_stave(m, s - 1)
        return higher.y + higher.get_height()

    # ------------------------------------------------------------------
    # Cached geometry
    # ------------------------------------------------------------------

    def get_measure_options(self, m: int) -> BlockOptions | None:
        return self.measure_options.get(m)

    def set_measure_options(self, m: int, options: BlockOptions) -> None:
        """Record the options of measure ``m``; setting the same options again is a no-op."""
        if self.measure_options.get(m) == options:
            return
        self.measure_options.put(m, options)

    def create_engine_stave(self, stave: Stave, x: float, y: float, width: float) -> engine.Stave:
        engine_stave = engine.Stave(x, y, width)
        for modifier in stave.modifiers:
            if modifier.kind == "clef":
                engine_stave.add_clef(modifier.value)
            elif modifier.kind == "key":
                engine_stave.add_key_signature(modifier.value)
            else:
                engine_stave.add_time_signature(modifier.value)
        return engine_stave

    def get_stave(self, m: int, s: int) -> engine.Stave | None:
        """Stave ``s`` of measure ``m``, or None if the measure has no such stave."""
        return self._staves.get_or_compute((m, s), lambda: self._build_stave(m, s))

    def get_staves(self, m: int) -> list[engine.Stave]:
        staves = []
        stave = self.get_stave(m, 0)
        while stave is not None:
            staves.append(stave)
            stave = self.get_stave(m, len(staves))
        return staves

    def _build_stave(self, m: int, s: int) -> engine.Stave | None:
        stave = self.document.get_measure(m).get_stave(s)
        if stave is None:
            return None
        self._inject_modifiers(m, stave)
        return self.create_engine_stave(
            stave,
            self.get_stave_x(m, s),
            self.get_stave_y(m, s),
            self.get_stave_width(m, s),
        )

    def _inject_modifiers(self, m: int, stave: Stave) -> None:
        """Attach the clef, key and time a measure's options call for."""
        options = self.get_measure_options(m)
        if options is None:
            return
        if options.system_start and stave.clef and stave.get_modifier("clef") is None:
            stave.add_modifier(Modifier("clef", stave.clef))
        if options.system_start and stave.key and stave.get_modifier("key") is None:
            stave.add_modifier(Modifier("key", stave.key))
        if options.piece_start and stave.get_modifier("time") is None:
            if stave.time_signature:
                stave.add_modifier(Modifier("time", stave.time_signature))
            elif stave.time:
                stave.add_modifier(Modifier("time", time_to_string(stave.time)))

    def get_voices(self, m: int) -> list[engine.Voice]:
        return self._measure_voices(m).voices

    def get_voice_objects(self, m: int) -> list[list[engine.Beam]]:
        return self._measure_voices(m).objects

    def get_stave_for_voice(self, m: int) -> list[int]:
        return self._measure_voices(m).staves

    def _measure_voices(self, m: int) -> MeasureVoices:
        return self._voices.get_or_compute(m, lambda: self._build_voices(m))

    def _build_voices(self, m: int) -> MeasureVoices:
        record = MeasureVoices()
        part_first_stave = 0
        for part in self.document.get_measure(m).get_parts():
            part_staves = [part.get_stave(s) for s in range(part.get_number_of_staves())]
            for j in range(part.get_number_of_voices()):
                voice = part.get_voice(j)
                stave_index = voice.stave_index(len(part_staves))
                engine_voice = voice.to_engine_voice(part_staves)
                record.voices.append(engine_voice)
                record.objects.append(voice.to_engine_objects(engine_voice))
                record.staves.append(part_first_stave + stave_index)
            part_first_stave += len(part_staves)
        return record

    def get_min_measure_width(self, m: int) -> float:
        """
        Narrowest width measure ``m`` can be typeset at.

        This is the width the voices need with no slack, plus the widest
        modifier area (clef, key, time) of any stave. The modifier area is
        found by laying the stave out at ``trial_width`` and subtracting the
        space left for notes.
        """
        return self._min_widths.get_or_compute(m, lambda: self._compute_min_width(m))

    def _compute_min_width(self, m: int) -> float:
        min_width = engine.VoiceFormatter().pre_calculate_min_total_width(self.get_voices(m))

        trial_width = self.options["trial_width"]
        max_extra_width = 0.0
        for stave in self.document.get_measure(m).get_staves():
            self._inject_modifiers(m, stave)
            trial = self.create_engine_stave(stave, 0, 0, trial_width)
            extra_width = trial_width - (trial.get_note_end_x() - trial.get_note_start_x())
            max_extra_width = max(max_extra_width, extra_width)
        return min_width + max_extra_width

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw_block(self, b: int, context: engine.RenderContext) -> None:
        block = self.get_block(b)
        if block is None:
            raise FormattingError(f"Block {b} does not exist.")
        for m in block.measures:
            staves = self.get_staves(m)
            options = self.get_measure_options(m) or BlockOptions()
            self._draw_measure(m, staves, context, options)

    def _draw_measure(
        self,
        m: int,
        staves: list[engine.Stave],
        context: engine.RenderContext,
        options: BlockOptions,
    ) -> None:
        record = self._measure_voices(m)
        start_stave = 0
        for part in self.document.get_measure(m).get_parts():
            num_staves = part.get_number_of_staves()
            part_staves = staves[start_stave:start_stave + num_staves]
            self._draw_part(part, part_staves, start_stave, record, context, options)
            start_stave += num_staves

        if (options.system_start or options.piece_start) and len(staves) > 1:
            connector = engine.StaveConnector(staves[0], staves[-1])
            connector.set_type("single")
            connector.set_context(context).draw()

    def _draw_part(
        self,
        part: Part,
        part_staves: list[engine.Stave],
        start_stave: int,
        record: MeasureVoices,
        context: engine.RenderContext,
        options: BlockOptions,
    ) -> None:
        if options.system_start:
            # Start of system: each stave shows the clef it declares.
            for stave, engine_stave in zip(part.staves, part_staves):
                if isinstance(stave.clef, str):
                    engine_stave.set_clef(stave.clef)

        # stave # within part -> indices into record.voices
        voices_for_stave: dict[int, list[int]] = {}
        for idx, absolute_stave in enumerate(record.staves):
            if start_stave <= absolute_stave < start_stave + len(part_staves):
                voices_for_stave.setdefault(absolute_stave - start_stave, []).append(idx)

        for stave in part_staves:
            stave.set_context(context).draw()

        for s, indices in sorted(voices_for_stave.items()):
            stave = part_staves[s]
            voices = [record.voices[i] for i in indices]
            formatter = engine.VoiceFormatter().join_voices(voices)
            formatter.format(voices, stave.get_note_end_x() - stave.get_note_start_x())
            for i in indices:
                record.voices[i].draw(context, stave)
                for obj in record.objects[i]:
                    obj.set_context(context).draw()
