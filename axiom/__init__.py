"""
axiom - VLESS + Reality tunnel manager

Control plane for a black-box Xray engine:
- Parsing vless:// links into connection profiles (with a manual fallback)
- Generating the engine's JSON config (capture inbound, VLESS + Reality outbound)
- Supervising the tunnel lifecycle (capture interface, engine process, status)
- Bounded structured event log for user interfaces
"""

__version__ = "0.1.0"

# Export core components
from .core.events import EventLog, LogEntry, Severity
from .core.exceptions import (
    AxiomError,
    ParseError,
    InvalidScheme,
    MissingCredentials,
    MalformedStructure,
    TunnelError,
    ConfigurationMissing,
    EngineStartFailure,
    InterfaceAcquisitionFailure,
)

# Export domain models and services
from .domain.profile import ConnectionProfile, LinkParser, ProfileService
from .domain.tunnel import (
    ConfigSynthesizer,
    ProxyEngineConfig,
    TunnelControl,
    TunnelState,
    TunnelSupervisor,
)

__all__ = [
    # Version
    "__version__",
    # Events
    "EventLog",
    "LogEntry",
    "Severity",
    # Errors
    "AxiomError",
    "ParseError",
    "InvalidScheme",
    "MissingCredentials",
    "MalformedStructure",
    "TunnelError",
    "ConfigurationMissing",
    "EngineStartFailure",
    "InterfaceAcquisitionFailure",
    # Profile
    "ConnectionProfile",
    "LinkParser",
    "ProfileService",
    # Tunnel
    "ConfigSynthesizer",
    "ProxyEngineConfig",
    "TunnelControl",
    "TunnelState",
    "TunnelSupervisor",
]
