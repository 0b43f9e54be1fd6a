"""Logging subsystem for simpletls.

Public API::

    from simpletls.logging import configure_logging

    configure_logging(settings.logging)
"""

from simpletls.logging.setup import configure_logging

__all__ = ["configure_logging"]
