"""Image pipeline — responsive WebP/JPEG derivatives for referenced images."""

from tabby.images.optimizer import DimensionCache, ImageOptimizer, OptimizeResult

__all__ = ["DimensionCache", "ImageOptimizer", "OptimizeResult"]
