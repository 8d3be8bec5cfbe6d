from .screen import Screen

__all__ = ["Screen"]
