"""
演化引擎錯誤類

Error taxonomy shared by the engine and its plug-ins.
"""


class EvolutionError(Exception):
    """Base for all evotrain exceptions."""

    pass


class ConfigurationError(EvolutionError, ValueError):
    """Invalid configuration: probabilities, round counts, population limits, unknown strategies."""

    pass


class OffspringInvalid(EvolutionError):
    """An operator or validator rejected a candidate offspring. Recovered by retrying."""

    pass


class TrainingFailure(EvolutionError, RuntimeError):
    """A generation could not be completed. The population keeps its previous state."""

    pass


class LifecycleError(EvolutionError, RuntimeError):
    """The engine was used in a state that does not allow the call."""

    pass


class InitializationError(LifecycleError):
    """Training started on an empty or unspeciated population."""

    pass
