"""Interface package exposing transport implementations."""

from .ble import *  # noqa: F403

__all__ = [name for name in globals() if not name.startswith("_")]
