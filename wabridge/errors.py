"""Errors raised by the registry and the pairing coordinator."""


class PairingError(Exception):
    """Base class for request-level pairing failures.

    These never take the process down: the gateway turns them into a
    ``pairing-error`` event or an ``{"error": ...}`` HTTP response.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(PairingError):
    """Missing or malformed request fields."""
    status_code = 400


class DuplicateIdentity(PairingError):
    """The phone number is already registered."""
    status_code = 409

    def __init__(self, identity: str, message: str = "Number already exists"):
        super().__init__(message)
        self.identity = identity


class NotFound(PairingError):
    """No record for the given phone number."""
    status_code = 404

    def __init__(self, identity: str, message: str = "Number not found"):
        super().__init__(message)
        self.identity = identity
