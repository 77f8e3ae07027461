"""
Engine control implementations
"""
from .xray import XrayEngine, which_xray
from .simulated import SimulatedEngine

__all__ = ["XrayEngine", "SimulatedEngine", "which_xray"]
