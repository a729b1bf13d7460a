from rapport.services.llm.base import (
    AllProvidersFailedError,
    LLMProvider,
    LLMProviderError,
    NoProviderAvailableError,
    ProviderKind,
)
from rapport.services.llm.cloud_provider import CloudProvider
from rapport.services.llm.on_device_provider import OnDeviceProvider

__all__ = [
    "AllProvidersFailedError",
    "CloudProvider",
    "LLMProvider",
    "LLMProviderError",
    "NoProviderAvailableError",
    "OnDeviceProvider",
    "ProviderKind",
]
