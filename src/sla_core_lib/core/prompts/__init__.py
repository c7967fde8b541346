from .templates import interpolate

__all__ = ["interpolate"]
