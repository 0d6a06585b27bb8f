"""Health data providers for LifeIndex.

Each provider implements the HealthDataProvider ABC and answers the four
query shapes the aggregator needs (statistic, samples, intervals, workouts).

Available providers:
    InMemoryHealthStore       — process-local store; ingest records directly
    AppleHealthExportProvider — Apple Health export.xml loaded into memory
"""

from src.wellness.providers.apple_health import AppleHealthExportProvider
from src.wellness.providers.memory import InMemoryHealthStore

__all__ = [
    "InMemoryHealthStore",
    "AppleHealthExportProvider",
    "get_provider",
]

# Registry: source_id → provider class
PROVIDER_REGISTRY: dict[str, type] = {
    "memory": InMemoryHealthStore,
    "apple_health": AppleHealthExportProvider,
}


def get_provider(source_id: str, **kwargs):
    """Instantiate the provider registered under ``source_id``.

    Args:
        source_id: e.g. 'memory', 'apple_health'
        **kwargs:  Passed to the provider constructor.

    Returns:
        A HealthDataProvider instance.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in PROVIDER_REGISTRY:
        raise KeyError(
            f"No provider registered for source '{source_id}'. "
            f"Available: {list(PROVIDER_REGISTRY)}"
        )
    return PROVIDER_REGISTRY[source_id](**kwargs)
