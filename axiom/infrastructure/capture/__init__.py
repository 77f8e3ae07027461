"""
Capture interface implementations
"""
from .tun import LinuxTunInterface, NullCaptureInterface

__all__ = ["LinuxTunInterface", "NullCaptureInterface"]
