"""Randomized stake and redemption simulations."""

from .runner import SimulationResult, SimulationRunner

__all__ = [
    "SimulationResult",
    "SimulationRunner"
]
