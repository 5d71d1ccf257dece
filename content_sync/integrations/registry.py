"""Integration registry for managing integration types."""

from typing import Dict, List, Type
from content_sync.integrations.base import BaseIntegration, ConfigurationError
from content_sync.models import IntegrationType


class IntegrationRegistry:
    """Registry for integration implementations."""

    _integrations: Dict[IntegrationType, Type[BaseIntegration]] = {}
    _instances: Dict[IntegrationType, BaseIntegration] = {}

    @classmethod
    def register(cls, integration_type: IntegrationType):
        """Decorator to register an integration class."""
        def decorator(integration_class: Type[BaseIntegration]):
            integration_class.integration_type = integration_type
            cls._integrations[integration_type] = integration_class
            cls._instances.pop(integration_type, None)
            return integration_class
        return decorator

    @staticmethod
    def _resolve(integration_type) -> IntegrationType:
        try:
            return IntegrationType(integration_type)
        except ValueError:
            raise ConfigurationError(f"Unknown integration type '{integration_type}'")

    @classmethod
    def get_class(cls, integration_type: IntegrationType) -> Type[BaseIntegration]:
        """Get integration class by type."""
        integration_class = cls._integrations.get(cls._resolve(integration_type))
        if integration_class is None:
            raise ConfigurationError(f"No integration registered for '{integration_type}'")
        return integration_class

    @classmethod
    def get(cls, integration_type: IntegrationType) -> BaseIntegration:
        """Get the shared adapter instance for a type."""
        integration_type = cls._resolve(integration_type)
        if integration_type not in cls._instances:
            cls._instances[integration_type] = cls.get_class(integration_type)()
        return cls._instances[integration_type]

    @classmethod
    def create(cls, integration_type: IntegrationType, **kwargs) -> BaseIntegration:
        """Create a fresh adapter, e.g. with custom settings or transport."""
        return cls.get_class(integration_type)(**kwargs)

    @classmethod
    def list_types(cls) -> List[IntegrationType]:
        """List all registered integration types."""
        return list(cls._integrations.keys())
