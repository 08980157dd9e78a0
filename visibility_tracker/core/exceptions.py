"""Application exception hierarchy.

Configuration errors abort a whole batch before dispatch; everything that
can go wrong inside a single analysis unit is handled at the unit boundary
and never surfaces here.
"""


class VisibilityTrackerError(Exception):
    """Base class for all application errors."""


class ConfigurationError(VisibilityTrackerError):
    """Provider setup makes a batch impossible to run."""


class NoEligibleProvidersError(ConfigurationError):
    def __init__(self, message: str = "no eligible providers"):
        super().__init__(message)


class InvalidProviderWeightError(ConfigurationError):
    def __init__(self, provider_id: int, weight: int):
        self.provider_id = provider_id
        self.weight = weight
        super().__init__(f"provider {provider_id} has invalid weight {weight} (must be a positive integer)")


class ExtractionError(VisibilityTrackerError):
    """Mention extraction could not run on the given input."""


class NotFoundError(VisibilityTrackerError):
    """Requested record does not exist."""
