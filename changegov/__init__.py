"""ChangeGov - change request governance engine for PMO teams."""

__version__ = "0.1.0"
