"""fundrank - peer-relative fund scoring."""

__version__ = "1.0.0"
