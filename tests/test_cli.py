"""
Tests for the command line interface
"""
import json
import os
import signal
import subprocess
import sys
import threading
import time

import pytest
from typer.testing import CliRunner

from axiom.adapters.cli.app import app
from axiom.adapters.cli.tunnel import reclaim_resources
from axiom.infrastructure.capture import tun
from axiom.infrastructure.state import FileStateStore

from conftest import SAMPLE_LINK

runner = CliRunner()


@pytest.fixture
def invoke(tmp_path, clean_env):
    state_dir = tmp_path / "state"
    
    def _invoke(*args):
        return runner.invoke(app, ["--state-dir", str(state_dir), *args])
    
    _invoke.state_dir = state_dir
    return _invoke


def test_import_and_show(invoke):
    result = invoke("import", SAMPLE_LINK)
    
    assert result.exit_code == 0
    assert "Config Loaded: example.com" in result.stdout
    assert "learn.microsoft.com" in result.stdout
    
    result = invoke("show")
    assert result.exit_code == 0
    assert "abc123..." in result.stdout
    assert "KEYVALUE" not in result.stdout.replace("KEYVALUE...", "")


def test_import_bad_link(invoke):
    result = invoke("import", "https://example.com")
    
    assert result.exit_code == 1
    assert "Failed to parse VLESS link. Check format." in result.stdout


def test_show_without_profile(invoke):
    result = invoke("show")
    
    assert result.exit_code == 0
    assert "No profile configured" in result.stdout


def test_set_keeps_address_from_current(invoke):
    invoke("import", SAMPLE_LINK)
    
    result = invoke("set", "--uuid", "new-id", "--pbk", "NEWKEY", "--sni", "www.example.org")
    
    assert result.exit_code == 0
    saved = FileStateStore(invoke.state_dir).load("axiom_vless_config")
    assert saved["identity"] == "new-id"
    assert saved["address"] == "example.com"
    assert saved["flow"] == "xtls-rprx-vision"


def test_set_requires_credentials(invoke):
    result = invoke("set", "--uuid", "", "--pbk", "KEY")
    
    assert result.exit_code == 1


def test_render_to_stdout(invoke):
    invoke("import", SAMPLE_LINK)
    
    result = invoke("render")
    
    assert result.exit_code == 0
    document = json.loads(result.stdout)
    assert document["outbounds"][0]["streamSettings"]["realitySettings"]["publicKey"] == "KEYVALUE"


def test_render_to_file(invoke, tmp_path):
    invoke("import", SAMPLE_LINK)
    output = tmp_path / "out" / "config.json"
    
    result = invoke("render", "-o", str(output))
    
    assert result.exit_code == 0
    assert json.loads(output.read_text(encoding="utf-8"))["inbounds"][0]["port"] == 10808


def test_render_without_profile(invoke):
    assert invoke("render").exit_code == 1


def test_status_disconnected(invoke):
    result = invoke("status")
    
    assert result.exit_code == 0
    assert "DISCONNECTED" in result.stdout


def test_status_ignores_stale_session(invoke):
    FileStateStore(invoke.state_dir).save("session", {"state": "Active", "pid": 0})
    
    result = invoke("status")
    
    assert "DISCONNECTED" in result.stdout


def test_disconnect_without_tunnel(invoke):
    result = invoke("disconnect")
    
    assert result.exit_code == 0
    assert "No running tunnel" in result.stdout


def test_connect_without_profile(invoke):
    result = invoke("connect", "--simulate")
    
    assert result.exit_code == 1
    assert "Configuration Missing!" in result.stdout


def test_connect_without_engine_binary(invoke, monkeypatch, tmp_path):
    invoke("import", SAMPLE_LINK)
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    
    result = invoke("connect", "--no-capture")
    
    assert result.exit_code == 1
    assert "Xray binary not found" in result.stdout
    record = FileStateStore(invoke.state_dir).load("session")
    assert record["state"] == "Idle"
    assert "Xray binary not found" in record["last_error"]


def test_invalid_config_file(invoke, tmp_path):
    result = invoke("--config", str(tmp_path / "missing.toml"), "status")
    
    assert result.exit_code == 1


@pytest.mark.skipif(sys.platform == "win32", reason="needs SIGTERM")
def test_connect_simulated_until_signalled(invoke):
    invoke("import", SAMPLE_LINK)
    store = FileStateStore(invoke.state_dir)
    seen = {}
    
    def stop_when_active():
        deadline = time.monotonic() + 10.0
        while time.monotonic() < deadline:
            record = store.load("session")
            if record and record.get("state") == "Active":
                seen.update(record)
                break
            time.sleep(0.05)
        os.kill(os.getpid(), signal.SIGTERM)
    
    stopper = threading.Thread(target=stop_when_active)
    stopper.start()
    result = invoke("connect", "--simulate")
    stopper.join()
    
    assert result.exit_code == 0
    assert seen["pid"] == os.getpid()
    assert "Simulation Mode Active" in result.stdout
    assert "Secure Tunnel Established." in result.stdout
    assert "VPN Core Stopped" in result.stdout
    assert store.load("session")["state"] == "Idle"


def test_state_dir_flag_beats_environment(invoke, monkeypatch, tmp_path):
    monkeypatch.setenv("AXIOM_STATE_DIR", str(tmp_path / "from-env"))
    
    result = invoke("import", SAMPLE_LINK)
    
    assert result.exit_code == 0
    assert FileStateStore(invoke.state_dir).exists("axiom_vless_config")
    assert not (tmp_path / "from-env").exists()


class RecordingIp:
    def __init__(self):
        self.commands = []
    
    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd[1:])
        return subprocess.CompletedProcess(cmd, 0, "", "")


@pytest.mark.skipif(sys.platform == "win32", reason="needs process groups")
def test_reclaim_kills_engine_group_and_deletes_device(monkeypatch):
    orphan = subprocess.Popen(["sleep", "30"], start_new_session=True)
    ip = RecordingIp()
    monkeypatch.setattr(tun.subprocess, "run", ip)
    
    reclaim_resources({
        "engine_pid": orphan.pid,
        "capture": {"device": "axiom0", "address": "10.0.1.1/24", "mtu": 1500, "managed": True},
    })
    
    assert orphan.wait(timeout=5) == -signal.SIGKILL
    assert ip.commands == [["link", "delete", "axiom0"]]


def test_reclaim_leaves_unmanaged_device(monkeypatch):
    ip = RecordingIp()
    monkeypatch.setattr(tun.subprocess, "run", ip)
    
    reclaim_resources({"engine_pid": None, "capture": {"device": "axiom0", "managed": False}})
    
    assert ip.commands == []


@pytest.mark.skipif(sys.platform == "win32", reason="needs process groups")
def test_reclaim_skips_process_outside_own_group(monkeypatch):
    child = subprocess.Popen(["sleep", "30"])
    try:
        reclaim_resources({"engine_pid": child.pid, "capture": None})
        assert child.poll() is None
    finally:
        child.kill()
        child.wait()
