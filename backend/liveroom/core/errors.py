"""
Engine error taxonomy.

Services raise these; main.py translates them into HTTP responses.

  TransientStoreError          network, timeout or contention; caller may retry
  StorePermissionError         store access rules denied the operation
  RegistrationClosedError      room no longer accepts RSVPs (terminal)
  RegistrationInProgressError  same user+room register already pending
  RoomNotFoundError / RsvpNotFoundError
  ProfileIncompleteError       identity is missing a required field
"""

from typing import Optional


class EngineError(Exception):
    """Base class for admission and lifecycle engine errors."""

    message = "Engine error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class StoreError(EngineError):
    message = "Backing store error"


class TransientStoreError(StoreError):
    message = "The store is temporarily unavailable. Please retry."


class StorePermissionError(StoreError):
    message = "This feature is unavailable for your account."


class RegistrationClosedError(EngineError):
    message = "Registration closed for this room."


class RegistrationInProgressError(EngineError):
    message = "A registration for this room is already in progress."


class RoomNotFoundError(EngineError):
    message = "Room not found."


class RsvpNotFoundError(EngineError):
    message = "No active RSVP for this room."


class ProfileIncompleteError(EngineError):
    message = "Display name missing. Please login again."
