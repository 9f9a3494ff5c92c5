"""Client and investigation workflow for KAgent agent-orchestration backends."""

__version__ = "1.0.0"
