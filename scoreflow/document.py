"""Document: generic container of measures produced by a backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from scoreflow.backends import BACKENDS, Backend
from scoreflow.errors import ArgumentError, ParseError
from scoreflow.score_models import Measure

if TYPE_CHECKING:
    from scoreflow.formatter import Formatter

logger = logging.getLogger(__name__)


class Document:
    """
    An ordered collection of measures, read lazily from a backend.

    The backend is the first entry of :data:`~scoreflow.backends.BACKENDS`
    whose ``appears_valid`` accepts ``data``, unless ``options["backend"]``
    forces one. Measures are created on first access and cached, so
    ``get_measure(i)`` always returns the same object for a given ``i``.

    Raises:
        ParseError: If no backend accepts ``data`` or the chosen backend
            cannot parse it.
    """

    type = "document"

    DEFAULT_OPTIONS: dict[str, Any] = {"backend": None}

    def __init__(self, data: Any, options: dict[str, Any] | None = None) -> None:
        self.options = {**self.DEFAULT_OPTIONS, **(options or {})}
        self.measures: dict[int, Measure] = {}
        self.backend = self._select_backend(data)

    def _select_backend(self, data: Any) -> Backend:
        forced = self.options["backend"]
        if forced is not None and not (isinstance(forced, type) and issubclass(forced, Backend)):
            raise ArgumentError(f"Unsupported backend option {forced!r}.")
        candidates = (forced,) if forced is not None else BACKENDS

        for backend_class in candidates:
            if not backend_class.appears_valid(data):
                continue
            logger.debug("Reading document with %s", backend_class.__name__)
            backend = backend_class()
            backend.parse(data)
            if not backend.is_valid():
                raise ParseError("Could not parse document data.")
            return backend
        raise ParseError("Data in document is not supported.")

    def get_formatter(
        self,
        formatter_class: type[Formatter] | None = None,
        options: dict[str, Any] | None = None,
    ) -> Formatter:
        """
        Create a formatter over a copy of this document.

        Formatters add clefs and other modifiers to the staves they lay out;
        working on a copy keeps this document unchanged.
        """
        if formatter_class is None:
            from scoreflow.liquid_formatter import LiquidFormatter

            formatter_class = LiquidFormatter
        return formatter_class(Document(self), options)

    def get_number_of_measures(self) -> int:
        return self.backend.get_number_of_measures()

    def get_measure(self, i: int) -> Measure:
        """Retrieve the ith measure (zero-indexed)."""
        if i not in self.measures:
            self.measures[i] = self.backend.get_measure(i)
        return self.measures[i]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "document",
            "measures": [
                self.get_measure(i).to_dict() for i in range(self.get_number_of_measures())
            ],
        }
