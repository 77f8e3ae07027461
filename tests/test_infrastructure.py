"""
Tests for state storage, engine process control and the TUN interface
"""
import os
import socket
import subprocess
import sys
import time

import pytest

from axiom.core.exceptions import EngineStartFailure, InterfaceAcquisitionFailure
from axiom.domain.tunnel import CaptureHandle, EngineStatus, TunnelState
from axiom.infrastructure.capture import LinuxTunInterface, NullCaptureInterface
from axiom.infrastructure.capture import tun
from axiom.infrastructure.engine import SimulatedEngine, XrayEngine
from axiom.infrastructure.engine.xray import which_xray
from axiom.infrastructure.state.file_store import is_process_alive

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs /bin/sh")


# ------------------------------------------------------------
# State store
# ------------------------------------------------------------

def test_store_round_trip(store):
    store.save("session", {"state": "Active", "pid": 42})
    
    assert store.exists("session")
    assert store.load("session") == {"state": "Active", "pid": 42}
    assert not list(store.state_dir.glob("*.tmp"))
    
    store.delete("session")
    assert not store.exists("session")
    assert store.load("session") is None


def test_store_unreadable_file(store):
    (store.state_dir / "session.json").write_text("{not json", encoding="utf-8")
    
    assert store.load("session") is None


def test_store_paths(store):
    assert store.engine_config_path.parent == store.state_dir
    assert store.engine_log_path.parent == store.state_dir


def test_is_process_alive():
    assert is_process_alive(os.getpid())
    assert not is_process_alive(None)
    assert not is_process_alive(0)




# ------------------------------------------------------------
# Engines
# ------------------------------------------------------------

def write_script(path, body):
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(0o755)
    return str(path)


def listening_engine(path, port):
    """Fake xray that binds the inbound port itself"""
    server = (
        "import socket, sys, time; "
        "s = socket.socket(); "
        "s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1); "
        "s.bind(('127.0.0.1', int(sys.argv[1]))); "
        "s.listen(); "
        "time.sleep(30)"
    )
    return write_script(path, f'echo "started with $*"\nexec "{sys.executable}" -c "{server}" {port}')


def wait_for_status(engine, wanted, timeout=5.0):
    deadline = time.monotonic() + timeout
    status = engine.status()
    while status is not wanted and time.monotonic() < deadline:
        time.sleep(0.05)
        status = engine.status()
    return status


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def free_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@posix_only
def test_xray_engine_lifecycle(tmp_path, free_port):
    binary = listening_engine(tmp_path / "xray", free_port)
    engine = XrayEngine(binary=binary, log_path=tmp_path / "engine.log", probe_port=free_port)
    
    assert engine.status() is EngineStatus.STOPPED
    engine.start(tmp_path / "config.json")
    try:
        assert engine.pid is not None
        assert os.getpgid(engine.pid) == engine.pid
        assert wait_for_status(engine, EngineStatus.RUNNING) is EngineStatus.RUNNING
        
        log = (tmp_path / "engine.log").read_text(encoding="utf-8")
        assert f"started with run -config {tmp_path / 'config.json'}" in log
    finally:
        engine.stop()
    
    assert engine.status() is EngineStatus.STOPPED
    assert engine.pid is None


@posix_only
def test_xray_engine_not_ready_until_inbound_listens(tmp_path, free_port):
    binary = write_script(tmp_path / "xray", "exec sleep 30")
    engine = XrayEngine(binary=binary, probe_port=free_port)
    
    engine.start(tmp_path / "config.json")
    try:
        assert engine.status() is EngineStatus.STARTING
    finally:
        engine.stop()


@posix_only
def test_xray_engine_ignores_listener_of_other_process(tmp_path, listener):
    binary = write_script(tmp_path / "xray", "exec sleep 30")
    engine = XrayEngine(binary=binary, probe_port=listener)
    
    engine.start(tmp_path / "config.json")
    try:
        time.sleep(0.3)
        assert engine.status() is EngineStatus.STARTING
    finally:
        engine.stop()


@posix_only
def test_xray_engine_stays_running_once_ready(tmp_path, free_port, monkeypatch):
    binary = listening_engine(tmp_path / "xray", free_port)
    engine = XrayEngine(binary=binary, probe_port=free_port)
    
    engine.start(tmp_path / "config.json")
    try:
        assert wait_for_status(engine, EngineStatus.RUNNING) is EngineStatus.RUNNING
        
        def no_socket_scan(pid):
            raise AssertionError("sockets scanned after ready")
        
        monkeypatch.setattr(engine, "_owns_inbound", no_socket_scan)
        assert engine.status() is EngineStatus.RUNNING
    finally:
        engine.stop()


@posix_only
def test_xray_engine_exit_is_failure(tmp_path, free_port):
    binary = write_script(tmp_path / "xray", "exit 1")
    engine = XrayEngine(binary=binary, probe_port=free_port)
    
    engine.start(tmp_path / "config.json")
    
    assert wait_for_status(engine, EngineStatus.FAILED) is EngineStatus.FAILED
    engine.stop()
    assert engine.status() is EngineStatus.STOPPED


@posix_only
def test_supervisor_fails_when_port_taken_by_other_process(tmp_path, listener, make_supervisor,
                                                         capture, profile, event_log):
    binary = write_script(
        tmp_path / "xray",
        'echo "listen tcp 127.0.0.1: bind: address already in use"\nsleep 1\nexit 23',
    )
    engine = XrayEngine(binary=binary, probe_port=listener)
    supervisor = make_supervisor(engine, capture, start_timeout=5.0, poll_interval=0.05)
    
    assert supervisor.start(profile).result(timeout=10) is TunnelState.FAILED
    assert "Secure Tunnel Established." not in [e.message for e in event_log.snapshot()]
    assert capture.released == 1


@posix_only
def test_xray_engine_double_start_rejected(tmp_path, free_port):
    binary = write_script(tmp_path / "xray", "exec sleep 30")
    engine = XrayEngine(binary=binary, probe_port=free_port)
    
    engine.start(tmp_path / "config.json")
    try:
        with pytest.raises(EngineStartFailure):
            engine.start(tmp_path / "config.json")
    finally:
        engine.stop()


def test_xray_engine_missing_binary(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    
    with pytest.raises(EngineStartFailure):
        XrayEngine().start(tmp_path / "config.json")


def test_which_xray_prefers_explicit_then_env(tmp_path, monkeypatch, clean_env):
    explicit = tmp_path / "explicit-xray"
    explicit.touch()
    from_env = tmp_path / "env-xray"
    from_env.touch()
    monkeypatch.setenv("XRAY_PATH", str(from_env))
    
    assert which_xray(str(explicit)) == str(explicit)
    assert which_xray(str(tmp_path / "missing")) == str(from_env)


def test_simulated_engine(tmp_path):
    engine = SimulatedEngine()
    
    assert engine.simulated
    engine.start(tmp_path / "config.json")
    assert engine.status() is EngineStatus.RUNNING
    engine.stop()
    assert engine.status() is EngineStatus.STOPPED


# ------------------------------------------------------------
# Capture interfaces
# ------------------------------------------------------------

class FakeIp:
    """Stand-in for subprocess.run recording ip invocations"""
    
    def __init__(self, fail_on=None, existing=False):
        self.fail_on = fail_on
        self.existing = existing
        self.commands = []
    
    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd[1:])
        if "show" in cmd and not self.existing:
            return subprocess.CompletedProcess(cmd, 1, "", 'Device "axiom0" does not exist.\n')
        if self.fail_on and self.fail_on in cmd:
            return subprocess.CompletedProcess(cmd, 2, "", "RTNETLINK answers: Operation not permitted\n")
        return subprocess.CompletedProcess(cmd, 0, "", "")


SHOW = ["link", "show", "dev", "axiom0"]


def test_tun_acquire_and_release(monkeypatch):
    fake = FakeIp()
    monkeypatch.setattr(tun.subprocess, "run", fake)
    interface = LinuxTunInterface(device="axiom0", address="10.0.1.1/24", mtu=1400, routes=["0.0.0.0/1"])
    
    handle = interface.acquire()
    interface.release(handle)
    interface.release(handle)
    
    assert handle == CaptureHandle(device="axiom0", address="10.0.1.1/24", mtu=1400, managed=True, released=True)
    assert fake.commands == [
        SHOW,
        ["tuntap", "add", "dev", "axiom0", "mode", "tun"],
        ["addr", "add", "10.0.1.1/24", "dev", "axiom0"],
        ["link", "set", "dev", "axiom0", "mtu", "1400", "up"],
        ["route", "add", "0.0.0.0/1", "dev", "axiom0"],
        ["link", "delete", "axiom0"],
    ]


def test_tun_acquire_removes_stale_device(monkeypatch):
    fake = FakeIp(existing=True)
    monkeypatch.setattr(tun.subprocess, "run", fake)
    
    LinuxTunInterface(device="axiom0").acquire()
    
    assert fake.commands[:3] == [
        SHOW,
        ["link", "delete", "axiom0"],
        ["tuntap", "add", "dev", "axiom0", "mode", "tun"],
    ]


def test_tun_acquire_failure_rolls_back(monkeypatch):
    fake = FakeIp(fail_on="addr")
    monkeypatch.setattr(tun.subprocess, "run", fake)
    
    with pytest.raises(InterfaceAcquisitionFailure, match="Operation not permitted"):
        LinuxTunInterface(device="axiom0").acquire()
    
    assert fake.commands[-1] == ["link", "delete", "axiom0"]


def test_tun_create_failure_leaves_nothing(monkeypatch):
    fake = FakeIp(fail_on="tuntap")
    monkeypatch.setattr(tun.subprocess, "run", fake)
    
    with pytest.raises(InterfaceAcquisitionFailure):
        LinuxTunInterface(device="axiom0").acquire()
    
    assert fake.commands == [SHOW, ["tuntap", "add", "dev", "axiom0", "mode", "tun"]]


def test_tun_missing_ip_binary(tmp_path):
    interface = LinuxTunInterface(ip_binary=str(tmp_path / "no-ip"))
    
    with pytest.raises(InterfaceAcquisitionFailure):
        interface.acquire()


def test_null_capture():
    interface = NullCaptureInterface("axiom0")
    handle = interface.acquire()
    interface.release(handle)
    
    assert handle.device == "axiom0"
    assert not handle.managed
    assert handle.released
