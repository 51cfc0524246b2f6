"""Tank monitoring control unit: level telemetry in, valve commands out, operator panel."""

__version__ = "0.1.0"
