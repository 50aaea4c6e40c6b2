"""scoreflow: liquid line-breaking layout for structured music scores."""

__version__ = "0.1.0"
