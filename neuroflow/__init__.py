"""NeuroFlow core: cognitive telemetry classification, action orchestration and semantic memory."""

__version__ = "0.3.0"
