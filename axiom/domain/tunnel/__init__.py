"""
Tunnel domain module
"""
from .models import CaptureHandle, Endpoint, EngineStatus, TunnelSession, TunnelState
from .config import ConfigSynthesizer, ProxyEngineConfig
from .service import TunnelSupervisor
from .control import TunnelControl

__all__ = [
    "CaptureHandle",
    "Endpoint",
    "EngineStatus",
    "TunnelSession",
    "TunnelState",
    "ConfigSynthesizer",
    "ProxyEngineConfig",
    "TunnelSupervisor",
    "TunnelControl",
]
