"""Vendor adapters and the registry that creates them by name.

Adapters are imported on first use, so a deployment that only talks to
one vendor never loads the others.
"""

import importlib
import logging
from typing import Dict, List, Type, Union

from ..core.errors import ConfigError
from .base import CollectionResult, MetricField, Operation, VendorAdapter

LOG = logging.getLogger(__name__)

# vendor -> "module:Class" (imported on demand) or an adapter class
ADAPTER_REGISTRY: Dict[str, Union[str, Type[VendorAdapter]]] = {
    'vnx': 'storage_collector.adapters.vnx:VnxAdapter',
    'netapp': 'storage_collector.adapters.netapp:NetAppAdapter',
    'hitachi': 'storage_collector.adapters.hitachi:HitachiAdapter',
    'scaleio': 'storage_collector.adapters.scaleio:ScaleIOAdapter',
    'solidfire': 'storage_collector.adapters.solidfire:SolidFireAdapter',
    'vmax': 'storage_collector.adapters.vmax:VmaxAdapter',
    'eseries': 'storage_collector.adapters.eseries:ESeriesAdapter',
    'isilon': 'storage_collector.adapters.isilon:IsilonAdapter',
    'xtremio': 'storage_collector.adapters.xtremio:XtremIOAdapter',
}


def register_adapter(vendor: str, target: Union[str, Type[VendorAdapter]]) -> None:
    """Register an adapter class, or a ``module:Class`` string, under a vendor name."""
    if vendor in ADAPTER_REGISTRY and ADAPTER_REGISTRY[vendor] != target:
        LOG.info(f"Replacing adapter for vendor '{vendor}' with {target}")
    ADAPTER_REGISTRY[vendor] = target


def get_adapter_class(vendor: str) -> Type[VendorAdapter]:
    """Import and return the adapter class for a vendor.

    Raises:
        ConfigError: the vendor is unknown or its adapter cannot be loaded
    """
    target = ADAPTER_REGISTRY.get(vendor)
    if target is None:
        raise ConfigError(f"Unsupported vendor: {vendor} (available: {', '.join(available_vendors())})",
                          vendor=vendor)
    if not isinstance(target, str):
        return target
    module_name, _, class_name = target.partition(':')
    try:
        module = importlib.import_module(module_name)
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load adapter {target}: {e}", vendor=vendor) from e


def create_adapter(vendor: str, transport, **kwargs) -> VendorAdapter:
    """Create an adapter for ``vendor`` on top of a shared transport.

    Keyword arguments (session_manager, dispatcher, codec, policy) are passed
    to the adapter constructor.
    """
    return get_adapter_class(vendor)(transport, **kwargs)


def available_vendors() -> List[str]:
    return sorted(ADAPTER_REGISTRY)


__all__ = ['ADAPTER_REGISTRY', 'CollectionResult', 'MetricField', 'Operation', 'VendorAdapter',
           'available_vendors', 'create_adapter', 'get_adapter_class', 'register_adapter']
