"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when strict output contracts are broken."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt in strict mode."""

    error_code = "STAGE_ERROR"


class CollaboratorUnavailable(StageError):
    """Raised when a geocoder keeps failing and a batch cannot be trusted."""

    error_code = "COLLABORATOR_UNAVAILABLE"


class UnresolvedAddress(PipelineError):
    """A facility address did not geocode at the required confidence."""

    error_code = "UNRESOLVED_ADDRESS"

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class MalformedCoordinate(PipelineError):
    """Latitude or longitude missing, unparsable, or out of range."""

    error_code = "MALFORMED_COORDINATE"
