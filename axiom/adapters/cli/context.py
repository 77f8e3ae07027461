"""
Composition of services for CLI commands
"""
import dataclasses
from functools import cached_property
from typing import Any, Dict

from ...core.events import EventLog
from ...core.interfaces import CaptureInterface, EngineController
from ...domain.profile import LinkParser, ProfileService
from ...domain.tunnel import ConfigSynthesizer, TunnelSupervisor
from ...infrastructure.capture import LinuxTunInterface, NullCaptureInterface
from ...infrastructure.engine import SimulatedEngine, XrayEngine
from ...infrastructure.state import FileStateStore
from ..config.loader import AppSettings


class CliContext:
    """Per-invocation service container, created by the app callback"""
    
    def __init__(self, settings: AppSettings, event_log: EventLog):
        self.settings = settings
        self.event_log = event_log
    
    @cached_property
    def state_store(self) -> FileStateStore:
        return FileStateStore(self.settings.state_dir)
    
    @cached_property
    def profiles(self) -> ProfileService:
        return ProfileService(
            self.state_store,
            self.event_log,
            parser=LinkParser(relaxed_fallback=self.settings.relaxed_fallback),
        )
    
    @property
    def synthesizer(self) -> ConfigSynthesizer:
        return ConfigSynthesizer(pinned_endpoint=self.settings.endpoint)
    
    def override(self, **changes: Any) -> None:
        """Apply command-level overrides (None values are ignored)"""
        changes = {k: v for k, v in changes.items() if v is not None}
        if changes:
            self.settings = dataclasses.replace(self.settings, **changes)
            self.settings.validate()
    
    def build_engine(self) -> EngineController:
        if self.settings.simulate:
            return SimulatedEngine()
        return XrayEngine(
            binary=self.settings.engine_binary,
            log_path=self.state_store.engine_log_path,
        )
    
    def build_capture(self) -> CaptureInterface:
        if self.settings.simulate or not self.settings.capture_enabled:
            return NullCaptureInterface(self.settings.capture_device)
        return LinuxTunInterface(
            device=self.settings.capture_device,
            address=self.settings.capture_address,
            mtu=self.settings.capture_mtu,
            routes=self.settings.capture_routes,
        )
    
    def build_supervisor(self) -> TunnelSupervisor:
        return TunnelSupervisor(
            engine=self.build_engine(),
            capture=self.build_capture(),
            event_log=self.event_log,
            config_path=self.state_store.engine_config_path,
            synthesizer=self.synthesizer,
            state_store=self.state_store,
            start_timeout=self.settings.start_timeout,
            poll_interval=self.settings.poll_interval,
        )
    
    def describe(self) -> Dict[str, Any]:
        """Settings summary for display"""
        return {
            "state_dir": str(self.settings.state_dir),
            "engine": "simulated" if self.settings.simulate else (self.settings.engine_binary or "xray (PATH)"),
            "endpoint": str(self.settings.endpoint) if self.settings.endpoint else "profile",
            "capture": self.settings.capture_device if self.settings.capture_enabled else "disabled",
        }
