"""Isle of Man weather question answering over stored forecasts."""

__version__ = "0.1.0"
