"""Error taxonomy for the fetch/render cycle.

Every error carries a short, human-readable ``message`` suitable for the
host's error view. ``NotModified`` is not an error and is modelled as a
``FetchState`` instead.
"""


class MeteogramError(Exception):
    """Base class for all cycle errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidSource(MeteogramError):
    """The configured source string cannot be used."""


class UnresolvableEndpoint(MeteogramError):
    """The resolver produced no usable request URL."""


class MissingIdentification(MeteogramError):
    """The client-identification header value is blank."""


class NetworkFailure(MeteogramError):
    """Transport error or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FetchTimeout(NetworkFailure):
    """A single attempt exceeded its time budget."""


class ParseError(MeteogramError):
    """A successful response did not have the expected structure."""


class InvalidVector(MeteogramError):
    """No usable vector root element in a payload."""


TRANSIENT_ERRORS: tuple[type[MeteogramError], ...] = (NetworkFailure,)
