"""
Control surface offered to user interfaces
"""
from concurrent.futures import Future

from ...core.constants import DEFAULT_VLESS_PORT
from ..profile.models import ConnectionProfile
from ..profile.service import ProfileService
from .models import TunnelState
from .service import TunnelSupervisor


class TunnelControl:
    """
    Thin facade with startTunnel / stopTunnel / getStatus semantics.
    
    Address, port and flow are taken from the current profile; the four
    arguments of start_tunnel() override the rest.
    """
    
    def __init__(self, supervisor: TunnelSupervisor, profiles: ProfileService):
        self.supervisor = supervisor
        self.profiles = profiles
    
    def start_tunnel(self, identity: str, sni: str, pbk: str, sid: str) -> "Future[TunnelState]":
        """
        Start the tunnel with the given credentials.
        
        Raises:
            ConfigurationMissing: If identity, pbk or sni is empty
        """
        current = self.profiles.current()
        profile = ConnectionProfile(
            identity=identity,
            address=current.address if current else "",
            port=current.port if current else DEFAULT_VLESS_PORT,
            sni=sni,
            pbk=pbk,
            sid=sid,
            flow=current.flow if current else "",
        )
        return self.supervisor.start(profile)
    
    def stop_tunnel(self) -> "Future[TunnelState]":
        return self.supervisor.stop()
    
    def get_status(self) -> str:
        return self.supervisor.get_status()
