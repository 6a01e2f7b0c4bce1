"""
Classification Infrastructure Repositories
===========================================

Persona rule provider backed by the hot-reloaded YAML configuration.
"""

from typing import List

from feedback_core.classification.application.services import IPersonaRuleProvider
from feedback_core.classification.domain import PersonaRule
from feedback_core.shared.infrastructure.config_manager import YAMLConfigManager


class YAMLPersonaRuleProvider(IPersonaRuleProvider):
    """Tenant rules from YAML, or the configured preset for other tenants."""

    def __init__(self, config_manager: YAMLConfigManager):
        self._config_manager = config_manager

    async def get_rules(self, tenant_id: str) -> List[PersonaRule]:
        return self._config_manager.config.rules_for(tenant_id)
