"""Extractor interface for pluggable extraction implementations."""

from abc import ABC, abstractmethod

from sitelog.extraction.types import ExtractionContext, ExtractionError, ExtractionResult


class ExtractorInterface(ABC):
    """Abstract extractor interface."""

    @abstractmethod
    def extract(self, transcript: str, context: ExtractionContext) -> ExtractionResult | ExtractionError:
        """Extract personnel, work logs, constraints and vendors from a transcript."""

    @property
    @abstractmethod
    def prompt_version(self) -> str:
        """Version of the prompt contract used for cache keys."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier recorded on extraction attempts."""
