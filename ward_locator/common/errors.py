"""Domain errors and failure typing."""


class WardLocatorError(Exception):
    """Base class for ward locator failures."""

    error_code = "WARD_LOCATOR_ERROR"


class ConfigError(WardLocatorError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class FetchError(WardLocatorError):
    """Raised when the remote dataset could not be obtained."""

    error_code = "FETCH_ERROR"


class FetchTimeout(FetchError):
    error_code = "FETCH_TIMEOUT"


class FetchTransportError(FetchError):
    """Non-2xx status, network failure or an undecodable payload."""

    error_code = "FETCH_TRANSPORT_ERROR"


class RetryableFetchError(FetchTransportError):
    pass


class FetchCancelled(FetchError):
    error_code = "FETCH_CANCELLED"


class PersistenceError(WardLocatorError):
    """Raised when the cache slot cannot be read or written."""

    error_code = "PERSISTENCE_ERROR"


class MalformedGeometry(WardLocatorError):
    """Raised for a single feature with missing or invalid coordinates."""

    error_code = "MALFORMED_GEOMETRY"
