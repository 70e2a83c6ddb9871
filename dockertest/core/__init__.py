"""Core data structures shared by the lifecycle stages."""

from .keeper import Keeper

__all__ = ["Keeper"]
