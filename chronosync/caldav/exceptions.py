"""Sync-pipeline exceptions for error handling."""

from enum import Enum
from typing import Optional


class DiscoveryStage(str, Enum):
    """Discovery steps that can fail independently."""

    PRINCIPAL = "principal"
    HOME = "home"
    LIST = "list"


class SyncError(Exception):
    """Base exception for calendar sync errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(SyncError):
    """Exception raised when required credentials or settings are missing."""


class DiscoveryError(SyncError):
    """Exception raised when a discovery stage fails past its fallback."""

    def __init__(self, message: str, stage: DiscoveryStage, status_code: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.status_code = status_code

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.message}"


class FetchError(SyncError):
    """Exception raised when a collection's range query fails."""

    def __init__(self, message: str, collection: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.collection = collection
        self.status_code = status_code


class ParseError(SyncError):
    """Exception raised when a calendar object cannot be normalized."""
