"""EcoTrack report lifecycle and task dispatch core."""

__version__ = "0.1.0"
