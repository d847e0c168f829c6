"""Suspension of components that belong to unpermitted violators."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .host import ComponentHostProtocol

logger = logging.getLogger(__name__)


def enforce(
    violators: Iterable[str],
    permitted: Mapping[str, bool],
    host: ComponentHostProtocol,
) -> list[Any]:
    """
    Suspend every live component of each violator that is not permitted.

    Components already suspended are left alone, so repeated calls settle on
    the same state. Suspended components are never resumed here; a new
    permission takes effect from the next run.

    Returns:
        The component handles that were suspended by this call
    """
    suspended: list[Any] = []
    for identity in sorted(violators):
        if permitted.get(identity) is True:
            continue

        try:
            instances = host.enumerate_component_instances(identity)
        except Exception as e:
            logger.warning(f"Cannot enumerate components of {identity}: {e}")
            continue

        for handle in instances:
            try:
                if host.is_suspended(handle):
                    continue
                host.suspend(handle)
            except Exception as e:
                logger.warning(f"Cannot suspend {handle!r} of {identity}: {e}")
                continue
            logger.info(f"Suspended {type(handle).__name__} from {identity}")
            suspended.append(handle)

    return suspended
