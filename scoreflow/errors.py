"""Exceptions raised while reading, laying out and drawing a score."""


class ScoreflowError(Exception):
    """Base class for all scoreflow errors."""


class ArgumentError(ScoreflowError, ValueError):
    """Malformed constructor input or an unsupported engine value."""


class ParseError(ScoreflowError, ValueError):
    """Document data is not supported or could not be parsed."""


class MethodNotImplemented(ScoreflowError, NotImplementedError):
    """A layout policy does not supply a required geometry primitive."""


class InvalidIRError(ScoreflowError, ValueError):
    """The measure data does not satisfy the intermediate representation."""


class FormattingError(ScoreflowError):
    """Geometry was requested that the layout cannot provide."""


class BlockOrderError(FormattingError):
    """A block was requested before the block preceding it."""
