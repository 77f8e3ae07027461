"""
Xray engine process control
"""
import os
import shutil
import subprocess
import threading
from pathlib import Path
from typing import IO, Optional

import psutil

from ...core.constants import ENGINE_BINARY_CANDIDATES, ENGINE_STOP_TIMEOUT, INBOUND_PORT
from ...core.exceptions import EngineStartFailure, EngineStopFailure
from ...core.interfaces import EngineController
from ...core.logging import get_logger
from ...domain.tunnel.models import EngineStatus

logger = get_logger(__name__)


def which_xray(explicit: Optional[str] = None) -> str:
    """
    Locate the Xray/V2Ray binary.
    
    Checks the explicit path, then XRAY_PATH, then the system PATH.
    
    Raises:
        EngineStartFailure: If no binary is found
    """
    for candidate in (explicit, os.environ.get("XRAY_PATH")):
        if candidate and Path(candidate).expanduser().exists():
            return str(Path(candidate).expanduser())
    
    for name in ENGINE_BINARY_CANDIDATES:
        found = shutil.which(name)
        if found:
            return found
    
    raise EngineStartFailure(
        "Xray binary not found. Install xray-core or set XRAY_PATH / engine.binary."
    )


class XrayEngine(EngineController):
    """
    Xray engine run as a child process.
    
    Ready once the engine process itself listens on the capture inbound
    port; from then on only the process is watched. Failed if the process
    exits on its own.
    """
    
    simulated = False
    
    def __init__(
        self,
        binary: Optional[str] = None,
        log_path: Optional[Path] = None,
        probe_port: int = INBOUND_PORT,
    ):
        """
        Initialize engine controller.
        
        Args:
            binary: Path to the xray executable (default: discovered)
            log_path: File receiving the engine's stdout/stderr
            probe_port: Inbound port the engine must listen on to be ready
        """
        self.binary = binary
        self.log_path = Path(log_path).expanduser() if log_path else None
        self.probe_port = probe_port
        self._process: Optional[subprocess.Popen] = None
        self._log_file: Optional[IO[bytes]] = None
        self._stopping = False
        self._ready = False
        self._lock = threading.Lock()
    
    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None
    
    def start(self, config_path: Path) -> None:
        """
        Launch ``xray run -config <path>``.
        
        Raises:
            EngineStartFailure: If already running or the process cannot be spawned
        """
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                raise EngineStartFailure("Engine is already running")
            
            binary = which_xray(self.binary)
            stdout = subprocess.DEVNULL
            if self.log_path:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                self._log_file = open(self.log_path, "ab")
                stdout = self._log_file
            
            try:
                self._process = subprocess.Popen(
                    [binary, "run", "-config", str(config_path)],
                    stdout=stdout,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    # Own process group, so it can be reaped if the supervisor is killed
                    start_new_session=True,
                )
            except OSError as e:
                self._close_log()
                raise EngineStartFailure(f"Failed to launch {binary}: {e}") from e
            
            self._stopping = False
            self._ready = False
            logger.info(f"Engine started: {binary} (pid {self._process.pid})")
    
    def stop(self) -> None:
        """
        Terminate the engine, killing it if it does not exit in time.
        
        Raises:
            EngineStopFailure: If the process cannot be signalled
        """
        with self._lock:
            proc = self._process
            if proc is None:
                return
            self._stopping = True
            try:
                if proc.poll() is None:
                    proc.terminate()
                    try:
                        proc.wait(timeout=ENGINE_STOP_TIMEOUT)
                    except subprocess.TimeoutExpired:
                        logger.warning(f"Engine pid {proc.pid} ignored SIGTERM, killing")
                        proc.kill()
                        proc.wait(timeout=ENGINE_STOP_TIMEOUT)
            except OSError as e:
                raise EngineStopFailure(f"Failed to stop engine: {e}") from e
            finally:
                self._process = None
                self._close_log()
            logger.info("Engine stopped")
    
    def status(self) -> EngineStatus:
        """Report engine status from the process and, until ready, its inbound socket"""
        with self._lock:
            proc = self._process
            if proc is None:
                return EngineStatus.STOPPED
            if proc.poll() is not None:
                if self._stopping:
                    return EngineStatus.STOPPED
                logger.debug(f"Engine exited with code {proc.returncode}")
                return EngineStatus.FAILED
            if self._ready:
                return EngineStatus.RUNNING
        
        if self._owns_inbound(proc.pid):
            with self._lock:
                self._ready = True
            return EngineStatus.RUNNING
        return EngineStatus.STARTING
    
    def _owns_inbound(self, pid: int) -> bool:
        """Whether the engine process itself listens on the inbound port"""
        try:
            connections = psutil.Process(pid).net_connections(kind="tcp")
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied as e:
            logger.debug(f"Cannot inspect sockets of engine pid {pid}: {e}")
            return False
        return any(
            conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == self.probe_port
            for conn in connections
        )
    
    def _close_log(self) -> None:
        if self._log_file is not None:
            try:
                self._log_file.close()
            finally:
                self._log_file = None
