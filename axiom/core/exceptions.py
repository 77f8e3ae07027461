"""
Unified exception definitions
"""


class AxiomError(Exception):
    """Base exception class"""
    pass


class ConfigError(AxiomError):
    """Configuration error"""
    pass


# ============================================================
# Link Parsing
# ============================================================

class ParseError(AxiomError):
    """Connection link could not be parsed"""
    pass


class InvalidScheme(ParseError):
    """Link does not start with vless://"""
    pass


class MissingCredentials(ParseError):
    """Identity or public key is empty"""
    pass


class MalformedStructure(ParseError):
    """Link cannot be sliced into identity, host and query"""
    pass


class ProfileError(AxiomError):
    """Profile error"""
    pass


# ============================================================
# Tunnel Lifecycle
# ============================================================

class TunnelError(AxiomError):
    """Tunnel error"""
    pass


class ConfigurationMissing(TunnelError):
    """Start requested without a usable profile"""
    pass


class EngineStartFailure(TunnelError):
    """Engine failed to start or never became ready"""
    pass


class EngineStopFailure(TunnelError):
    """Engine stop call failed"""
    pass


class InterfaceAcquisitionFailure(TunnelError):
    """Capture interface could not be established"""
    pass
