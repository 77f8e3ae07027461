"""
Connection profile models
"""
from dataclasses import dataclass, asdict
from typing import Dict, Any

from ...core.constants import DEFAULT_VLESS_PORT


def coerce_port(raw: Any) -> int:
    """Numeric port in range, otherwise the VLESS default"""
    try:
        port = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_VLESS_PORT
    if not (1 <= port <= 65535):
        return DEFAULT_VLESS_PORT
    return port


@dataclass(frozen=True)
class ConnectionProfile:
    """
    Normalized VLESS + Reality connection parameters.
    
    Profiles are immutable: a new import replaces the current one
    wholesale instead of mutating it.
    """
    identity: str
    address: str = ""
    port: int = DEFAULT_VLESS_PORT
    sni: str = ""
    pbk: str = ""
    sid: str = ""
    flow: str = ""
    
    def is_usable(self) -> bool:
        """A profile can drive the engine only with identity and public key"""
        return bool(self.identity) and bool(self.pbk)
    
    def masked(self, field_name: str, visible: int = 8) -> str:
        """Abbreviate a secret field for display"""
        value = getattr(self, field_name)
        if not value:
            return ""
        return f"{value[:visible]}..."
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionProfile":
        """Create from dictionary (accepts the legacy ``uuid`` key)"""
        return cls(
            identity=data.get("identity", data.get("uuid", "")) or "",
            address=data.get("address", "") or "",
            port=coerce_port(data.get("port")),
            sni=data.get("sni", "") or "",
            pbk=data.get("pbk", "") or "",
            sid=data.get("sid", "") or "",
            flow=data.get("flow", "") or "",
        )
