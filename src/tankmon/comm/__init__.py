from .mqtt_ingress import LevelIngress, TelemetryError, parse_level
from .serial_link import ValveLink, encode_command, parse_status_frame

__all__ = [
    "LevelIngress",
    "TelemetryError",
    "ValveLink",
    "encode_command",
    "parse_level",
    "parse_status_frame",
]
