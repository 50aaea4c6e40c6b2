from collections.abc import Callable
from typing import Any

from pytest import fixture

from scoreflow.document import Document


@fixture
def quarter_measure() -> Callable[..., dict[str, Any]]:
    """Build an IR measure: one treble stave holding a voice of quarter notes."""

    def build(keys: tuple[str, ...] = ("c/4", "d/4", "e/4", "f/4"), **stave: Any) -> dict[str, Any]:
        return {
            "parts": [
                {
                    "staves": [{"clef": "treble", **stave}],
                    "voices": [{"notes": [{"keys": [key], "duration": "q"} for key in keys]}],
                }
            ]
        }

    return build


@fixture
def grand_staff_measure() -> Callable[[], dict[str, Any]]:
    """Build an IR measure: one part on a treble and a bass stave."""

    def build() -> dict[str, Any]:
        return {
            "parts": [
                {
                    "staves": [{"clef": "treble"}, {"clef": "bass"}],
                    "voices": [
                        {"stave": 0, "notes": [{"keys": ["c/5"], "duration": "w"}]},
                        {"stave": 1, "notes": [{"keys": ["c/3"], "duration": "w"}]},
                    ],
                }
            ]
        }

    return build


@fixture
def make_document() -> Callable[[list[dict[str, Any]]], Document]:
    def build(measures: list[dict[str, Any]]) -> Document:
        return Document({"type": "document", "measures": measures})

    return build
