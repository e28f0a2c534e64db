"""Poller service package.

Re-exports all public symbols::

    from nostrbridge.services.poller import Poller, PollerConfig
"""

from .configs import PollerConfig
from .service import Poller


__all__ = [
    "Poller",
    "PollerConfig",
]
