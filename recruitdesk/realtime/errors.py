"""Socket-level error types."""


class SocketError(Exception):
    """An application error reported to the offending connection as an ``error`` event."""

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def payload(self) -> dict:
        return {"message": self.message, **self.details}


class ConnectionNotReady(RuntimeError):
    """The connection id is unknown to the hub: not accepted yet, or already gone."""
