"""Command-line tool for activating and monitoring GLM quota, with a systemd scheduling daemon."""

__version__ = "0.1.0"