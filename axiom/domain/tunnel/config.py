"""
Engine config synthesis

Builds the Xray JSON document for a VLESS + Reality + Vision outbound
fed by a transparent capture inbound. Pure transform, no I/O.
"""
import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ...core.constants import (
    DEFAULT_FLOW,
    DIRECT_OUTBOUND_PROTOCOL,
    DIRECT_OUTBOUND_TAG,
    ENGINE_LOG_LEVEL,
    INBOUND_NETWORK,
    INBOUND_PORT,
    INBOUND_PROTOCOL,
    INBOUND_TAG,
    PROXY_OUTBOUND_TAG,
    REALITY_FINGERPRINT,
    SNIFFING_DEST_OVERRIDE,
    STREAM_NETWORK,
    STREAM_SECURITY,
    VLESS_ENCRYPTION,
)
from ...core.exceptions import ConfigError
from ..profile.models import ConnectionProfile
from .models import Endpoint


@dataclass(frozen=True)
class ProxyEngineConfig:
    """Engine config document"""
    document: Dict[str, Any]
    
    @property
    def inbounds(self) -> List[Dict[str, Any]]:
        return self.document["inbounds"]
    
    @property
    def outbounds(self) -> List[Dict[str, Any]]:
        return self.document["outbounds"]
    
    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.document)
    
    def to_json(self, indent: int = 4) -> str:
        """Serialize for the engine"""
        return json.dumps(self.document, indent=indent, ensure_ascii=False)


class ConfigSynthesizer:
    """
    Turns a usable ConnectionProfile into a ProxyEngineConfig.
    
    The remote endpoint comes from the profile unless the deployment pins
    one, in which case the profile address/port are informational only.
    """
    
    def __init__(self, pinned_endpoint: Optional[Endpoint] = None):
        """
        Initialize synthesizer.
        
        Args:
            pinned_endpoint: Operator-configured endpoint overriding the
                profile's address/port
        """
        self.pinned_endpoint = pinned_endpoint
    
    def resolve_endpoint(self, profile: ConnectionProfile) -> Endpoint:
        """
        Get the remote endpoint the proxy outbound dials.
        
        Raises:
            ConfigError: If neither a pinned endpoint nor a profile address exists
        """
        if self.pinned_endpoint is not None:
            return self.pinned_endpoint
        if not profile.address:
            raise ConfigError("No remote endpoint: profile has no address and none is pinned")
        return Endpoint(address=profile.address, port=profile.port)
    
    def synthesize(self, profile: ConnectionProfile) -> ProxyEngineConfig:
        """
        Build the engine config.
        
        Args:
            profile: Usable profile (caller checks is_usable())
        
        Raises:
            ConfigError: If no remote endpoint can be resolved
        """
        if not profile.is_usable():
            raise ValueError("synthesize() requires a usable profile")
        endpoint = self.resolve_endpoint(profile)
        
        return ProxyEngineConfig({
            "log": {"loglevel": ENGINE_LOG_LEVEL},
            "inbounds": [self._capture_inbound()],
            "outbounds": [
                self._proxy_outbound(profile, endpoint),
                {"tag": DIRECT_OUTBOUND_TAG, "protocol": DIRECT_OUTBOUND_PROTOCOL},
            ],
        })
    
    @staticmethod
    def _capture_inbound() -> Dict[str, Any]:
        return {
            "tag": INBOUND_TAG,
            "port": INBOUND_PORT,
            "protocol": INBOUND_PROTOCOL,
            "settings": {"network": INBOUND_NETWORK, "followRedirect": True},
            "sniffing": {"enabled": True, "destOverride": list(SNIFFING_DEST_OVERRIDE)},
        }
    
    @staticmethod
    def _proxy_outbound(profile: ConnectionProfile, endpoint: Endpoint) -> Dict[str, Any]:
        user = {
            "id": profile.identity,
            "flow": profile.flow or DEFAULT_FLOW,
            "encryption": VLESS_ENCRYPTION,
        }
        return {
            "tag": PROXY_OUTBOUND_TAG,
            "protocol": "vless",
            "settings": {
                "vnext": [{
                    "address": endpoint.address,
                    "port": endpoint.port,
                    "users": [user],
                }]
            },
            "streamSettings": {
                "network": STREAM_NETWORK,
                "security": STREAM_SECURITY,
                "realitySettings": {
                    "show": False,
                    "fingerprint": REALITY_FINGERPRINT,
                    "serverName": profile.sni,
                    "publicKey": profile.pbk,
                    "shortId": profile.sid,
                },
            },
        }
