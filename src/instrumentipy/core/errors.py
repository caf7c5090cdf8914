"""Exception hierarchy for instrumentation failures."""


class InstrumentationError(Exception):
    """Base class for errors raised by instrumentipy."""


class TransportError(InstrumentationError):
    """A metrics, log or trace sink could not accept data.

    Raised by sink adapters and caught by the dispatchers. Never surfaced
    to HTTP clients.

    Attributes:
        sink: Name of the sink that failed.
    """

    def __init__(self, sink: str, message: str) -> None:
        super().__init__(f"{sink}: {message}")
        self.sink = sink


class HandlerError(InstrumentationError):
    """A downstream handler failure reported to the client.

    Handlers may raise this to signal a failure with an explicit message;
    any other exception is treated the same way using ``str(exc)``. Only a
    5xx ``status_code`` is honored; anything else is answered with 500.
    """

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(InstrumentationError):
    """Deployment configuration is missing or invalid.

    Fatal at startup: the process refuses to run with undefined telemetry
    destinations.
    """
