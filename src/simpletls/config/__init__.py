"""Configuration subsystem for simpletls.

Public API::

    from simpletls.config import load_settings

    settings = load_settings("simpletls.yaml")
    settings.mode                 # AcquisitionMode
    settings.locations.cache_dir  # Path
"""

from simpletls.config.loader import (
    ConfigValidationError,
    check_settings,
    load_settings,
    validate_data,
)
from simpletls.config.settings import (
    AcmeSettings,
    AcquisitionMode,
    CertificateLocations,
    HomeDirectoryError,
    LoggingSettings,
    SimpleTLSSettings,
    build_settings,
    default_locations,
)

__all__ = [
    "AcmeSettings",
    "AcquisitionMode",
    "CertificateLocations",
    "ConfigValidationError",
    "HomeDirectoryError",
    "LoggingSettings",
    "SimpleTLSSettings",
    "build_settings",
    "check_settings",
    "default_locations",
    "load_settings",
    "validate_data",
]
