"""Extract-then-save workflow."""

from .orchestrator import ExtractionSaveOrchestrator, describe_state

__all__ = ["ExtractionSaveOrchestrator", "describe_state"]
