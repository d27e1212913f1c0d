"""
Idempotent, transactional persistence of assembled entities and caller rows.
"""

from pipeline.loaders.finalizer import FinalizeFailure, FinalizeSuccess, SyncFinalizer

__all__ = ["FinalizeFailure", "FinalizeSuccess", "SyncFinalizer"]
