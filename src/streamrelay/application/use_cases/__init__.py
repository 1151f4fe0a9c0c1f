from .extract_stream import ExtractionOrchestrator, validate_locator

__all__ = ["ExtractionOrchestrator", "validate_locator"]
