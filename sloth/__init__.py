"""Load SLO specs, validate them and generate Prometheus recording and alert rules."""

__version__ = "0.1.0"