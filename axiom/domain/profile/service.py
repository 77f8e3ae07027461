"""
Profile domain service - owner of the current connection profile
"""
import threading
from typing import Optional

from ...core.constants import PROFILE_STATE_KEY
from ...core.events import EventLog
from ...core.exceptions import ParseError, ProfileError
from ...core.interfaces import StateStore
from ...core.logging import get_logger
from .models import ConnectionProfile
from .parser import LinkParser, ParseStrategy

logger = get_logger(__name__)


class ProfileService:
    """
    Current profile holder.
    
    Single writer, many readers: the profile is replaced wholesale by
    import_link() or replace(), and only usable profiles are ever stored.
    """
    
    def __init__(
        self,
        state_store: StateStore,
        event_log: EventLog,
        parser: Optional[LinkParser] = None,
    ):
        """
        Initialize profile service.
        
        Args:
            state_store: Where the last good profile is persisted
            event_log: User-facing event log
            parser: Link parser (default: strict LinkParser)
        """
        self.state_store = state_store
        self.event_log = event_log
        self.parser = parser or LinkParser()
        self._current: Optional[ConnectionProfile] = None
        self._lock = threading.Lock()
    
    def current(self) -> Optional[ConnectionProfile]:
        """Get current profile, loading the persisted one on first use"""
        with self._lock:
            if self._current is None:
                data = self.state_store.load(PROFILE_STATE_KEY)
                if data:
                    profile = ConnectionProfile.from_dict(data)
                    if profile.is_usable():
                        self._current = profile
                    else:
                        logger.warning("Ignoring stored profile without credentials")
            return self._current
    
    def import_link(self, raw: str) -> ConnectionProfile:
        """
        Parse a vless:// link and make it the current profile.
        
        Raises:
            ParseError: If the link cannot be parsed
        """
        try:
            profile, strategy = self.parser.parse_with_strategy(raw)
        except ParseError as e:
            logger.debug(f"Link rejected: {e}")
            self.event_log.error("Failed to parse VLESS link. Check format.")
            raise
        
        if not profile.is_usable():
            # Relaxed fallback let empty credentials through; keep them out
            # of the store but hand the profile back for display
            self.event_log.warn(f"Config Parsed (Fallback): {profile.address} has no credentials")
            return profile
        
        self._set(profile)
        
        if strategy is ParseStrategy.MANUAL:
            self.event_log.system(f"Config Parsed (Fallback): {profile.address}")
        else:
            self.event_log.system(f"Config Loaded: {profile.address}")
        self.event_log.info(f"UUID: {profile.masked('identity')}")
        self.event_log.info(f"Key: {profile.masked('pbk')}")
        return profile
    
    def replace(self, profile: ConnectionProfile) -> ConnectionProfile:
        """
        Set profile from manual entry.
        
        Raises:
            ProfileError: If profile is not usable
        """
        if not profile.is_usable():
            raise ProfileError("Profile requires both identity and public key (pbk)")
        self._set(profile)
        self.event_log.system(f"Config Saved: {profile.address or 'manual entry'}")
        return profile
    
    def _set(self, profile: ConnectionProfile) -> None:
        with self._lock:
            self.state_store.save(PROFILE_STATE_KEY, profile.to_dict())
            self._current = profile
