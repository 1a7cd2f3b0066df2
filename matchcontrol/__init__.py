"""Match flow, scoring, rankings, displays and driver station packets for a competition field."""

__version__ = "0.1.0"