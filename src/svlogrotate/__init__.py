"""svlogrotate - size and schedule based rotation for supervised process logs."""

__version__ = "1.0.0"
