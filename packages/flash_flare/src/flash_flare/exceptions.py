class FlareError(Exception):
    """Base class for all Flash Flare exceptions."""


class InvalidArgumentError(FlareError, ValueError):
    """Raised when a builder or registry call receives an unusable argument."""


class ModelNotFoundError(FlareError, LookupError):
    """Raised when no delegate exists for the requested model name."""


class RecordNotFoundError(FlareError, LookupError):
    """Raised when a single record was required but none matched."""
