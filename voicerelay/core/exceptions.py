"""
core/exceptions.py
------------------
Domain error taxonomy.

Services raise these; main.py maps each one to an HTTP status with a single
exception handler. The detail string is the only thing a client ever sees,
so it must never contain storage-layer error text.
"""

from fastapi import status


class VoiceRelayError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidCredentials(VoiceRelayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid handle or password"


class DuplicateHandle(VoiceRelayError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Handle is already registered"


class Forbidden(VoiceRelayError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed"


class NotFound(VoiceRelayError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class BadInput(VoiceRelayError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Conflict(VoiceRelayError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Message has already been responded to"


class StorageUnavailable(VoiceRelayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage temporarily unavailable"
