"""Analytics subpackage with the derived-metric combinators."""

from . import derived

__all__ = ["derived"]
