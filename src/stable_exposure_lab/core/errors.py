"""Exception types raised by upstream adapters and configuration loaders.

None of these cross a component boundary: :class:`~stable_exposure_lab.engine.SourceQuery`
turns them into unavailable :class:`~stable_exposure_lab.core.MetricResult` values.
"""

from __future__ import annotations


class ExposureError(Exception):
    """Base class for StableExposureLab errors."""


class TransientFetchError(ExposureError):
    """Network or server failure that is worth retrying."""


class UpstreamDataError(ExposureError):
    """Upstream answered, but the payload holds no usable value."""


class ConfigurationError(ExposureError):
    """A required address, identifier or setting is missing or invalid."""


__all__ = [
    "ExposureError",
    "TransientFetchError",
    "UpstreamDataError",
    "ConfigurationError",
]
