"""
Wizard registry for Service Wizard Bot

Append-only lookup table from service type to WizardDefinition, populated
once at startup.
"""

import logging
from typing import Dict, List, Optional, Set

from service_wizard.config import WizardBotConfig
from service_wizard.models import WizardDefinition
from service_wizard.wizards import build_dashboard_wizard, build_dns_wizard

logger = logging.getLogger(__name__)


class DuplicateServiceTypeError(ValueError):
    """Raised when two wizards claim the same service type"""


class WizardRegistry:
    """
    Registry of wizard definitions keyed by service type.

    Iteration and list_all() follow registration order, which is the order
    of the service-type menu.
    """

    def __init__(self):
        self._wizards: Dict[str, WizardDefinition] = {}

    def register(self, definition: WizardDefinition) -> None:
        """
        Add a wizard definition.

        Raises:
            DuplicateServiceTypeError: If the service type is already registered
        """
        if definition.service_type in self._wizards:
            raise DuplicateServiceTypeError(
                f"Wizard with service type '{definition.service_type}' is already registered"
            )
        self._wizards[definition.service_type] = definition
        logger.info(f"Registered wizard '{definition.service_type}' ({definition.display_name})")

    def lookup(self, service_type: str) -> Optional[WizardDefinition]:
        return self._wizards.get(service_type)

    def list_all(self) -> List[WizardDefinition]:
        return list(self._wizards.values())

    def known_types(self) -> Set[str]:
        return set(self._wizards)

    def __contains__(self, service_type: str) -> bool:
        return service_type in self._wizards

    def __len__(self) -> int:
        return len(self._wizards)


def build_default_registry(config: WizardBotConfig) -> WizardRegistry:
    """Registry holding the compiled-in wizards, DNS first"""
    registry = WizardRegistry()
    registry.register(build_dns_wizard(config.host_suffix))
    registry.register(build_dashboard_wizard())
    return registry
