"""Sync orchestration and the local fallback dataset."""

from .fallback import build_fallback_ics, load_fallback_ics
from .orchestrator import SyncOrchestrator

__all__ = ["SyncOrchestrator", "build_fallback_ics", "load_fallback_ics"]
