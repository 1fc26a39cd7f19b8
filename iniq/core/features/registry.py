"""
Feature registry — holds features and picks the ones a run needs.

The composition root (``iniq.core.use_cases.run``) calls
``build_registry`` with the feature classes to instantiate; nothing
registers itself at import time.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.features.base import Feature
from iniq.core.features.security import SecurityFeature
from iniq.core.features.ssh_keys import SSHKeysFeature
from iniq.core.features.sudo import SudoFeature
from iniq.core.features.user import UserFeature
from iniq.core.models.options import Options

logger = logging.getLogger(__name__)

FeatureFactory = Callable[[OsInfo, Host], Feature]

DEFAULT_FEATURES: tuple[FeatureFactory, ...] = (
    UserFeature,
    SSHKeysFeature,
    SudoFeature,
    SecurityFeature,
)


class FeatureRegistry:
    """Ordered collection of features."""

    def __init__(self) -> None:
        self._features: list[Feature] = []

    def register(self, feature: Feature) -> None:
        if self.get(feature.name) is not None:
            raise ValueError(f"feature already registered: {feature.name}")
        self._features.append(feature)
        logger.debug("Registered feature: %s (priority %d)", feature.name, feature.priority)

    def get(self, name: str) -> Feature | None:
        for feature in self._features:
            if feature.name == name:
                return feature
        return None

    @property
    def features(self) -> list[Feature]:
        """All features in registration order."""
        return list(self._features)

    def get_active_features(self, options: Options) -> list[Feature]:
        """Features whose activation predicate matches, in registration order."""
        return [f for f in self._features if f.should_activate(options)]

    def __len__(self) -> int:
        return len(self._features)


def sort_by_priority(features: Iterable[Feature]) -> list[Feature]:
    """Stable sort by priority; ties keep their relative order."""
    return sorted(features, key=lambda f: f.priority)


def build_registry(
    os_info: OsInfo,
    host: Host,
    factories: Iterable[FeatureFactory] = DEFAULT_FEATURES,
) -> FeatureRegistry:
    """Instantiate every factory and register the result."""
    registry = FeatureRegistry()
    for factory in factories:
        registry.register(factory(os_info, host))
    return registry
