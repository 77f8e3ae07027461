"""
Shared fixtures and test doubles
"""
import json
import threading
from pathlib import Path
from typing import List, Optional

import pytest

from axiom.core.events import EventLog
from axiom.core.interfaces import CaptureInterface, EngineController
from axiom.domain.profile import ConnectionProfile
from axiom.domain.tunnel import CaptureHandle, EngineStatus, TunnelSupervisor
from axiom.infrastructure.state import FileStateStore

SAMPLE_LINK = (
    "vless://abc123@example.com:443?sni=learn.microsoft.com"
    "&pbk=KEYVALUE&sid=shortid&flow=xtls-rprx-vision"
)


class FakeEngine(EngineController):
    """Engine double: becomes RUNNING once `ready` is set"""
    
    def __init__(self, ready: bool = True, start_error: Optional[Exception] = None,
                 stop_error: Optional[Exception] = None):
        self.ready = threading.Event()
        if ready:
            self.ready.set()
        self.start_error = start_error
        self.stop_error = stop_error
        self.calls: List[str] = []
        self.config_seen: Optional[dict] = None
        self._status = EngineStatus.STOPPED
    
    def start(self, config_path: Path) -> None:
        self.calls.append("start")
        if self.start_error:
            raise self.start_error
        # Config must already be on disk when the engine starts
        self.config_seen = json.loads(Path(config_path).read_text(encoding="utf-8"))
        self._status = EngineStatus.STARTING
    
    def stop(self) -> None:
        self.calls.append("stop")
        self._status = EngineStatus.STOPPED
        if self.stop_error:
            raise self.stop_error
    
    def status(self) -> EngineStatus:
        if self._status is EngineStatus.STARTING and self.ready.is_set():
            self._status = EngineStatus.RUNNING
        return self._status
    
    @property
    def pid(self) -> Optional[int]:
        return None if self._status is EngineStatus.STOPPED else 4242
    
    def crash(self) -> None:
        self._status = EngineStatus.FAILED
    
    def stall(self) -> None:
        """Report STARTING until `ready` is set again"""
        self.ready.clear()
        self._status = EngineStatus.STARTING


class FakeCapture(CaptureInterface):
    """Capture double counting acquisitions and releases"""
    
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.acquired = 0
        self.released = 0
    
    def acquire(self) -> CaptureHandle:
        if self.error:
            raise self.error
        self.acquired += 1
        return CaptureHandle(device="tun-test", address="10.0.1.1/24", mtu=1500)
    
    def release(self, handle: CaptureHandle) -> None:
        self.released += 1


@pytest.fixture
def profile() -> ConnectionProfile:
    return ConnectionProfile(
        identity="abc123",
        address="example.com",
        port=443,
        sni="learn.microsoft.com",
        pbk="KEYVALUE",
        sid="shortid",
        flow="xtls-rprx-vision",
    )


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def store(tmp_path) -> FileStateStore:
    return FileStateStore(tmp_path / "state")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def make_supervisor(tmp_path, event_log, store):
    created = []
    
    def factory(engine: EngineController, capture: CaptureInterface, **kwargs) -> TunnelSupervisor:
        kwargs.setdefault("start_timeout", 2.0)
        kwargs.setdefault("poll_interval", 0.01)
        supervisor = TunnelSupervisor(
            engine=engine,
            capture=capture,
            event_log=event_log,
            config_path=tmp_path / "engine" / "config.json",
            state_store=store,
            **kwargs,
        )
        created.append(supervisor)
        return supervisor
    
    yield factory
    
    for supervisor in created:
        supervisor.shutdown()


@pytest.fixture
def clean_env(monkeypatch):
    """Drop configuration coming from the host environment"""
    import os
    for key in list(os.environ):
        if key.startswith("AXIOM_") or key == "XRAY_PATH":
            monkeypatch.delenv(key, raising=False)
