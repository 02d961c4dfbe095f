"""
Errors raised by the seed classification pipeline.

Data and configuration errors are fatal and surface at the call site.
Fold-level fit errors are not represented here: the tuning drivers record
them as failed fold results instead of raising.
"""


class SeedClassifierError(Exception):
    """Base class for all pipeline errors."""


class DataValidationError(SeedClassifierError):
    """Raised when input records are malformed or labels fall outside the expected codes."""


class StratificationError(DataValidationError):
    """Raised when a class has too few members to be stratified."""


class ConfigurationError(SeedClassifierError):
    """Raised for invalid settings: fold counts, unknown metrics, models or strategies."""


class PipelineStateError(SeedClassifierError, RuntimeError):
    """Raised when a transform or prediction is requested before fitting."""


class NoSuccessfulScoresError(SeedClassifierError):
    """Raised when a search produced no successful score to select from."""


class SearchCancelledError(SeedClassifierError):
    """Raised when a hyperparameter search is cancelled externally."""
