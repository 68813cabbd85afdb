"""
Installable wallet modules.

- base: module interface, capability probing, storage namespaces
- dca: recurring buy (dollar-cost averaging) module
"""

from .base import (
    IntrospectionNotSupported,
    Module,
    ModuleCapability,
    ModuleInterfaceNotSupported,
    UnsupportedModule,
    module_namespace,
    probe_capabilities,
)
from .dca import DCA, RecurringBuySettings, RecurringBuyState

__all__ = [
    "DCA",
    "IntrospectionNotSupported",
    "Module",
    "ModuleCapability",
    "ModuleInterfaceNotSupported",
    "RecurringBuySettings",
    "RecurringBuyState",
    "UnsupportedModule",
    "module_namespace",
    "probe_capabilities",
]
