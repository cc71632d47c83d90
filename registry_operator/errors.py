"""
Error taxonomy shared by the store client and the reconcile engine.

  NotFoundError  — the object does not exist (benign while deleting)
  ConflictError  — stale resourceVersion on a write (benign while deleting)
  StoreError     — any other API failure (network, 5xx, validation)
  RenderError    — template expansion or YAML parsing failed
  ApplyError     — the intended object could not be serialized
"""
from typing import Optional


class OperatorError(Exception):
    """Base class for all engine errors."""


class StoreError(OperatorError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    def __init__(self, message: str):
        super().__init__(message, status=404)


class ConflictError(StoreError):
    def __init__(self, message: str):
        super().__init__(message, status=409)


class RenderError(OperatorError):
    pass


class ApplyError(OperatorError):
    pass


class ReconcileCancelled(OperatorError):
    """The reconcile deadline expired before the attempt finished."""
