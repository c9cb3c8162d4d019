# src/engine/driver_factory.py — v1
"""Factory: instantiate the analysis engine driver from configuration.

ENGINE_DRIVER is either a registered driver name or a class path
("package.module.ClassName" or "package.module:ClassName"). The class is
constructed with the Settings instance as its only argument.
"""

from __future__ import annotations

import importlib
import logging

from mirbatch.config.settings import Settings
from mirbatch.core.errors import DriverConfigurationError
from mirbatch.engine.base_driver import BaseAnalysisDriver
from mirbatch.engine.retry import RetryConfig, RetryingDriver

logger = logging.getLogger(__name__)

# Registry of driver name -> class path (lazy import).
_DRIVER_REGISTRY: dict[str, str] = {}


def register_driver(name: str, class_path: str) -> None:
    """Register a driver implementation under a short name."""
    _DRIVER_REGISTRY[name] = class_path
    logger.info("Registered analysis driver: %s → %s", name, class_path)


def create_driver(settings: Settings) -> BaseAnalysisDriver:
    """Build the configured driver, wrapped with the driver-layer retry policy.

    Raises:
        DriverConfigurationError: If no driver is configured or it cannot be built.
    """
    configured = settings.engine_driver.strip()
    if not configured:
        raise DriverConfigurationError(
            "No analysis engine driver configured (set ENGINE_DRIVER)"
        )

    class_path = _DRIVER_REGISTRY.get(configured, configured)
    driver_cls = _import_class(class_path)
    if not (isinstance(driver_cls, type) and issubclass(driver_cls, BaseAnalysisDriver)):
        raise DriverConfigurationError(
            f"{class_path} is not a BaseAnalysisDriver subclass"
        )

    try:
        driver: BaseAnalysisDriver = driver_cls(settings)
    except Exception as e:
        raise DriverConfigurationError(f"Cannot instantiate {class_path}: {e}") from e

    if settings.driver_max_retries > 0:
        driver = RetryingDriver(
            driver,
            RetryConfig(
                max_retries=settings.driver_max_retries,
                base_delay_s=settings.driver_retry_base_delay_s,
                backoff_factor=settings.driver_retry_backoff_factor,
            ),
        )

    logger.debug("Created analysis driver: %s", driver.name)
    return driver


def _import_class(class_path: str) -> type:
    """Dynamically import a class from 'pkg.mod.Class' or 'pkg.mod:Class'."""
    if ":" in class_path:
        module_path, class_name = class_path.split(":", 1)
    elif "." in class_path:
        module_path, class_name = class_path.rsplit(".", 1)
    else:
        raise DriverConfigurationError(
            f"Unknown driver {class_path!r}. "
            f"Registered: {', '.join(sorted(_DRIVER_REGISTRY)) or 'none'}"
        )

    try:
        module = importlib.import_module(module_path)
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise DriverConfigurationError(f"Cannot import driver {class_path}: {e}") from e
