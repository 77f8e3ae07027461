"""
VLESS connection link parser

Format:
    vless://<identity>@<host>:<port>?sni=<s>&pbk=<k>&sid=<i>&flow=<f>#<name>

Two strategies are tried in order:
1. URI: the generic URL splitter from the standard library
2. Manual: plain string slicing, for links the URI splitter rejects
   (invalid ports, broken IPv6 brackets, ...)
"""
from enum import Enum
from typing import Dict, List, Tuple
from urllib.parse import parse_qs, urlsplit

from ...core.constants import VLESS_SCHEME_PREFIX
from ...core.exceptions import InvalidScheme, MalformedStructure, MissingCredentials
from ...core.logging import get_logger
from .models import ConnectionProfile, coerce_port

logger = get_logger(__name__)

QUERY_FIELDS = ("sni", "pbk", "sid", "flow")


class ParseStrategy(str, Enum):
    """Strategy that produced a profile"""
    URI = "uri"
    MANUAL = "manual"


def _query_fields(query: str) -> Dict[str, str]:
    """Extract the Reality parameters, missing ones become empty strings"""
    params: Dict[str, List[str]] = parse_qs(query, keep_blank_values=True)
    return {key: params.get(key, [""])[0] for key in QUERY_FIELDS}


class LinkParser:
    """
    Parser of vless:// links into ConnectionProfile.
    
    Example:
        >>> LinkParser().parse("vless://abc@example.com:443?pbk=KEY").identity
        'abc'
    """
    
    def __init__(self, relaxed_fallback: bool = False):
        """
        Initialize parser.
        
        Args:
            relaxed_fallback: Let the manual strategy return profiles with
                empty credentials instead of raising MissingCredentials
        """
        self.relaxed_fallback = relaxed_fallback
    
    def parse(self, raw: str) -> ConnectionProfile:
        """
        Parse a connection link.
        
        Raises:
            InvalidScheme: Link does not start with vless://
            MissingCredentials: Identity or pbk is empty
            MalformedStructure: Neither strategy could slice the link
        """
        profile, _ = self.parse_with_strategy(raw)
        return profile
    
    def parse_with_strategy(self, raw: str) -> Tuple[ConnectionProfile, ParseStrategy]:
        """Parse a connection link and report which strategy succeeded"""
        link = (raw or "").strip()
        if not link.startswith(VLESS_SCHEME_PREFIX):
            raise InvalidScheme(f"Invalid protocol, expected {VLESS_SCHEME_PREFIX}")
        
        try:
            profile = self._parse_uri(link)
        except ValueError as e:
            logger.debug(f"URI parsing failed ({e}), falling back to manual split")
        else:
            self._check_credentials(profile)
            return profile, ParseStrategy.URI
        
        profile = self._parse_manual(link)
        if not self.relaxed_fallback:
            self._check_credentials(profile)
        return profile, ParseStrategy.MANUAL
    
    def _parse_uri(self, link: str) -> ConnectionProfile:
        """Primary strategy; any ValueError hands over to the manual one"""
        parts = urlsplit(link)
        if not parts.hostname:
            raise ValueError("missing host")
        if "@" not in parts.netloc:
            raise ValueError("missing user info")
        
        # Raises ValueError on non-numeric or out of range ports
        port = parts.port
        
        return ConnectionProfile(
            identity=parts.username or "",
            address=parts.hostname,
            port=coerce_port(port),
            **_query_fields(parts.query),
        )
    
    def _parse_manual(self, link: str) -> ConnectionProfile:
        """Fallback strategy: split on '@', '?', ':' and '#' once each"""
        body = link[len(VLESS_SCHEME_PREFIX):]
        identity, sep, rest = body.partition("@")
        if not sep:
            raise MalformedStructure("Missing '@' separator between identity and host")
        
        host_port, _, query_fragment = rest.partition("?")
        host_port = host_port.partition("#")[0].rstrip("/")
        host, _, port = host_port.partition(":")
        if not host:
            raise MalformedStructure("Missing host")
        
        query = query_fragment.partition("#")[0]
        
        return ConnectionProfile(
            identity=identity,
            address=host.lower(),
            port=coerce_port(port),
            **_query_fields(query),
        )
    
    @staticmethod
    def _check_credentials(profile: ConnectionProfile) -> None:
        if not profile.is_usable():
            raise MissingCredentials("Missing critical keys (identity or pbk)")
