"""
Tunnel domain models
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any


class TunnelState(str, Enum):
    """Tunnel lifecycle states"""
    IDLE = "Idle"
    STARTING = "Starting"
    ACTIVE = "Active"
    STOPPING = "Stopping"
    FAILED = "Failed"


# States in which the supervisor holds the capture interface
HOLDING_STATES = frozenset({TunnelState.STARTING, TunnelState.ACTIVE, TunnelState.STOPPING})


class EngineStatus(str, Enum):
    """Status reported by the engine control boundary"""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class CaptureHandle:
    """Ownership token of an established capture interface"""
    device: str
    address: str = ""
    mtu: int = 0
    # Created by us, so ours to delete when the owner is gone
    managed: bool = False
    released: bool = False
    
    def to_dict(self) -> Dict[str, Any]:
        return {"device": self.device, "address": self.address, "mtu": self.mtu, "managed": self.managed}


@dataclass
class Endpoint:
    """Remote host:port pair"""
    address: str
    port: int
    
    @classmethod
    def parse(cls, value: str) -> "Endpoint":
        """Parse ``host:port``"""
        from ...core.exceptions import ConfigError
        
        host, sep, port = value.strip().rpartition(":")
        if not sep or not host:
            raise ConfigError(f"Invalid endpoint '{value}', expected host:port")
        try:
            port_num = int(port)
        except ValueError:
            raise ConfigError(f"Invalid endpoint port in '{value}'") from None
        if not (1 <= port_num <= 65535):
            raise ConfigError(f"Invalid endpoint port: {port_num}")
        return cls(address=host.strip("[]"), port=port_num)
    
    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass
class TunnelSession:
    """Runtime record of the tunnel"""
    state: TunnelState = TunnelState.IDLE
    capture_handle: Optional[CaptureHandle] = None
    sni: str = ""
    endpoint: Optional[str] = None
    engine_pid: Optional[int] = None
    started_at: Optional[float] = None
    last_error: Optional[str] = None
    updated_at: float = field(default_factory=time.time)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "state": self.state.value,
            "capture": self.capture_handle.to_dict() if self.capture_handle else None,
            "sni": self.sni,
            "endpoint": self.endpoint,
            "engine_pid": self.engine_pid,
            "started_at": self.started_at,
            "last_error": self.last_error,
            "updated_at": self.updated_at,
        }
