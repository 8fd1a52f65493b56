"""sightline — validation, decoding and projection of streaming telemetry."""

__version__ = "0.1.0"
