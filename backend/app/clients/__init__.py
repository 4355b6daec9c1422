"""External service clients."""

from app.clients.clock_probe import ClockProbe
from app.clients.inference import InferenceClient, extract_json_object

__all__ = [
    "ClockProbe",
    "InferenceClient",
    "extract_json_object",
]
