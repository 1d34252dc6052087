"""Error kinds raised by the benchmark pipeline."""


class BenchmarkError(Exception):
    """Base class for benchmark errors."""


class ConfigurationError(BenchmarkError, ValueError):
    """Invalid fold, weight or subset parameters. Aborts the run before fitting."""


class AdapterFitError(BenchmarkError):
    """A model adapter failed to fit or converge."""

    def __init__(self, method: str, message: str):
        super().__init__(f"{method}: {message}")
        self.method = method


class MetricUndefined(BenchmarkError):
    """A metric is mathematically undefined for a method's predictions."""


class AttributionUnavailable(BenchmarkError):
    """A fitted model exposes no importance or inclusion signal."""
