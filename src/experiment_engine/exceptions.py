"""Engine-specific exceptions."""


class ExperimentEngineError(Exception):
    """Base exception for experiment engine errors."""


class ExperimentConfigError(ExperimentEngineError, ValueError):
    """Raised for invalid configuration or a caller contract violation."""


class InvalidTransitionError(ExperimentConfigError):
    """Raised when an experiment status transition is not allowed."""


class ExperimentNotFoundError(ExperimentEngineError, KeyError):
    """Raised when a record store has no experiment with the given id."""

    def __init__(self, experiment_id: str) -> None:
        self.experiment_id = experiment_id
        super().__init__(f"Experiment not found: {experiment_id}")

    def __str__(self) -> str:
        return self.args[0]
