# trick_tally/errors.py
from __future__ import annotations


class ScorekeeperError(Exception):
    """Base class for every error raised by the scorekeeping core."""


class StateError(ScorekeeperError):
    """Raised when a transition is attempted from an illegal phase, or a
    structural precondition (player count, duplicate name, ...) fails."""


class ValidationError(ScorekeeperError):
    """Raised when a field-level constraint is violated."""


class NotFoundError(ScorekeeperError):
    """Raised when a player id or round number does not exist."""


class StorageError(ScorekeeperError):
    """Raised when a state observer (usually a store) fails to accept a
    transition; the engine has already rolled the transition back."""
