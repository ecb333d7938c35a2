"""Failure taxonomy shared by the engine and the transports."""


class RelayError(Exception):
    """Base class for relay failures."""


class UpstreamError(RelayError):
    """The completion provider failed or returned an unusable payload."""


class DeliveryError(RelayError):
    """An outbound reply could not be delivered to the channel."""


class ValidationError(RelayError):
    """An inbound payload is missing its sender or its text."""


class UnauthorizedError(RelayError):
    """An administrative call presented an invalid credential."""
