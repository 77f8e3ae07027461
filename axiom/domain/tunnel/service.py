"""
Tunnel domain service - lifecycle of capture interface and engine
"""
import dataclasses
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ...core.constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_START_TIMEOUT,
    SESSION_STATE_KEY,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
)
from ...core.events import EventLog
from ...core.exceptions import (
    ConfigError,
    ConfigurationMissing,
    EngineStartFailure,
    InterfaceAcquisitionFailure,
    TunnelError,
)
from ...core.interfaces import CaptureInterface, EngineController, StateStore
from ...core.logging import get_logger
from ..profile.models import ConnectionProfile
from .config import ConfigSynthesizer, ProxyEngineConfig
from .models import CaptureHandle, EngineStatus, HOLDING_STATES, TunnelSession, TunnelState

logger = get_logger(__name__)


def _completed(state: TunnelState) -> "Future[TunnelState]":
    future: "Future[TunnelState]" = Future()
    future.set_result(state)
    return future


class TunnelSupervisor:
    """
    Tunnel supervisor - sole owner of the tunnel session.

    States: Idle -> Starting -> Active -> Stopping -> Idle, with Failed
    reachable from Starting and Active. A new start is accepted from Failed.

    All lifecycle work runs on one dedicated worker thread, so a stop
    requested while Starting is queued behind the start and applied once
    it resolves. start() and stop() return futures of the resulting state.
    """

    def __init__(
        self,
        engine: EngineController,
        capture: CaptureInterface,
        event_log: EventLog,
        config_path: Path,
        synthesizer: Optional[ConfigSynthesizer] = None,
        state_store: Optional[StateStore] = None,
        start_timeout: float = DEFAULT_START_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """
        Initialize tunnel supervisor.

        Args:
            engine: Engine control boundary
            capture: Capture interface provider
            event_log: User-facing event log
            config_path: File the engine reads its config from
            synthesizer: Engine config builder
            state_store: Optional store the session record is published to
            start_timeout: Seconds to wait for the engine to become ready
            poll_interval: Seconds between engine status polls
        """
        if start_timeout <= 0:
            raise ConfigError(f"Invalid start_timeout: {start_timeout}")
        if poll_interval <= 0:
            raise ConfigError(f"Invalid poll_interval: {poll_interval}")

        self.engine = engine
        self.capture = capture
        self.event_log = event_log
        self.config_path = Path(config_path)
        self.synthesizer = synthesizer or ConfigSynthesizer()
        self.state_store = state_store
        self.start_timeout = start_timeout
        self.poll_interval = poll_interval

        self._session = TunnelSession()
        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="TunnelSupervisor")
        self._engine_started = False
        self._closed = False
        self._monitor_thread: Optional[threading.Thread] = None
        self._monitor_stop = threading.Event()

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    @property
    def state(self) -> TunnelState:
        with self._lock:
            return self._session.state

    @property
    def session(self) -> TunnelSession:
        """Copy of the current session record"""
        with self._lock:
            return dataclasses.replace(self._session)

    def get_status(self) -> str:
        """CONNECTED while Active, DISCONNECTED otherwise"""
        return STATUS_CONNECTED if self.state is TunnelState.ACTIVE else STATUS_DISCONNECTED

    def wait_until(self, states: Iterable[TunnelState], timeout: Optional[float] = None) -> bool:
        """
        Block until the session reaches one of the given states.

        Returns:
            True if reached, False on timeout
        """
        wanted = frozenset(states)
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self._session.state in wanted, timeout)

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------

    def start(self, profile: ConnectionProfile) -> "Future[TunnelState]":
        """
        Request tunnel start.

        Args:
            profile: Profile to build the engine config from

        Returns:
            Future resolving to ACTIVE or FAILED

        Raises:
            ConfigurationMissing: Profile lacks identity, public key or SNI
            TunnelError: Tunnel already starting, active or stopping
        """
        if not profile.is_usable():
            self.event_log.error("Configuration Missing!")
            raise ConfigurationMissing("Profile requires identity and public key (pbk)")
        if not profile.sni:
            self.event_log.error("Configuration Missing!")
            raise ConfigurationMissing("Profile requires a camouflage domain (sni)")

        with self._lock:
            if self._closed:
                raise TunnelError("Tunnel supervisor is shut down")
            if self._session.state in HOLDING_STATES:
                raise TunnelError(f"Tunnel is already {self._session.state.value.lower()}")

            # Failed -> Starting is an implicit reset
            self._session = TunnelSession(sni=profile.sni)
            self._transition(TunnelState.STARTING)
            return self._executor.submit(self._run_start, profile)

    def stop(self) -> "Future[TunnelState]":
        """
        Request tunnel stop. Never raises; stopping an idle tunnel is a no-op.

        Returns:
            Future resolving to IDLE
        """
        with self._lock:
            if self._session.state is TunnelState.IDLE:
                return _completed(TunnelState.IDLE)
            return self._submit(self._run_stop) or _completed(self._session.state)

    def report_fatal(self, reason: str) -> Optional["Future[TunnelState]"]:
        """Signal that the engine died or the tunnel is otherwise unusable"""
        return self._submit(self._handle_fatal, reason)

    def shutdown(self) -> None:
        """Stop the tunnel and release the worker thread"""
        self.stop().result()
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------
    # Worker tasks
    # ------------------------------------------------------------

    def _run_start(self, profile: ConnectionProfile) -> TunnelState:
        """Starting: config -> capture interface -> engine -> readiness"""
        try:
            config = self.synthesizer.synthesize(profile)
            endpoint = self.synthesizer.resolve_endpoint(profile)
            self._write_config(config)

            if self.engine.simulated:
                self.event_log.warn("Simulation Mode Active")
            self.event_log.system("Injecting Reality Protocol...")
            self.event_log.info(f"Target: {endpoint}")

            self._acquire_capture()
            self._launch_engine()
            self._await_ready()
        except Exception as e:
            logger.error(f"Tunnel start failed: {e}", exc_info=not isinstance(e, TunnelError))
            self._teardown()
            with self._lock:
                self._session.last_error = str(e)
                self._transition(TunnelState.FAILED)
            self.event_log.error(f"Tunnel start failed: {e}")
            return TunnelState.FAILED

        with self._lock:
            self._session.started_at = time.time()
            self._session.endpoint = str(endpoint)
            self._transition(TunnelState.ACTIVE)
        self.event_log.system(f"Camouflage: {profile.sni}")
        self.event_log.system("Secure Tunnel Established.")
        self._start_monitor()
        return TunnelState.ACTIVE

    def _run_stop(self) -> TunnelState:
        """Stopping: engine first, then capture interface"""
        try:
            with self._lock:
                state = self._session.state
                if state is TunnelState.IDLE:
                    return TunnelState.IDLE
                if state is TunnelState.STARTING:
                    # A start requested after this stop is queued behind it
                    return state
                if state is TunnelState.FAILED:
                    # Resources were released when the attempt failed
                    self._transition(TunnelState.IDLE)
                    return TunnelState.IDLE
                self._transition(TunnelState.STOPPING)

            self._stop_monitor()
            self._teardown()
        except Exception as e:
            logger.error(f"Unexpected error while stopping tunnel: {e}", exc_info=True)

        with self._lock:
            self._session.started_at = None
            self._transition(TunnelState.IDLE)
        self.event_log.warn("VPN Core Stopped")
        return TunnelState.IDLE

    def _handle_fatal(self, reason: str) -> TunnelState:
        """Active -> Failed on an external fatal signal"""
        with self._lock:
            if self._session.state is not TunnelState.ACTIVE:
                logger.debug(f"Ignoring fatal signal in state {self._session.state.value}: {reason}")
                return self._session.state
            self._session.last_error = reason

        logger.error(f"Tunnel lost: {reason}")
        self._stop_monitor()
        self._teardown()
        with self._lock:
            self._transition(TunnelState.FAILED)
        self.event_log.error(f"Tunnel failed: {reason}")
        return TunnelState.FAILED

    # ------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------

    def _write_config(self, config: ProxyEngineConfig) -> None:
        """Write config durably before the engine is started"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.config_path.with_name(self.config_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(config.to_json())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.config_path)
        logger.debug(f"Engine config written to {self.config_path}")

    def _acquire_capture(self) -> CaptureHandle:
        try:
            handle = self.capture.acquire()
        except InterfaceAcquisitionFailure:
            raise
        except Exception as e:
            raise InterfaceAcquisitionFailure(f"Failed to establish capture interface: {e}") from e

        with self._lock:
            self._session.capture_handle = handle
            self._publish()
        logger.info(f"Capture interface {handle.device} established")
        return handle

    def _launch_engine(self) -> None:
        # Marked before the call so a half-started engine is still stopped
        self._engine_started = True
        try:
            self.engine.start(self.config_path)
        except EngineStartFailure:
            raise
        except Exception as e:
            raise EngineStartFailure(f"Engine failed to start: {e}") from e
        
        with self._lock:
            self._session.engine_pid = self.engine.pid
            self._publish()

    def _await_ready(self) -> None:
        """Poll engine status until it runs, fails or the timeout expires"""
        deadline = time.monotonic() + self.start_timeout
        while True:
            status = self.engine.status()
            if status is EngineStatus.RUNNING:
                return
            if status in (EngineStatus.FAILED, EngineStatus.STOPPED):
                raise EngineStartFailure(f"Engine {status.value} before becoming ready")
            if time.monotonic() >= deadline:
                raise EngineStartFailure(f"Engine not ready after {self.start_timeout:g}s")
            time.sleep(self.poll_interval)

    def _teardown(self) -> None:
        """Stop the engine (best effort), then release the capture interface"""
        if self._engine_started:
            self._engine_started = False
            try:
                self.engine.stop()
            except Exception as e:
                logger.warning(f"Engine stop failed: {e}")
                self.event_log.warn(f"Engine stop failed: {e}")
            with self._lock:
                self._session.engine_pid = None
        self._release_capture()

    def _release_capture(self) -> None:
        with self._lock:
            handle = self._session.capture_handle
            self._session.capture_handle = None

        if handle is None or handle.released:
            return
        try:
            self.capture.release(handle)
        except Exception as e:
            logger.warning(f"Capture interface release failed: {e}")
            self.event_log.warn(f"Capture interface release failed: {e}")
        finally:
            handle.released = True

    # ------------------------------------------------------------
    # Engine monitor
    # ------------------------------------------------------------

    def _start_monitor(self) -> None:
        self._monitor_stop.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitor_loop,
            daemon=True,
            name="TunnelSupervisor-Monitor",
        )
        self._monitor_thread.start()

    def _stop_monitor(self) -> None:
        self._monitor_stop.set()
        thread = self._monitor_thread
        if thread and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=self.poll_interval + 2.0)
        self._monitor_thread = None

    def _monitor_loop(self) -> None:
        """Watch the engine while Active and report its loss to the worker"""
        while not self._monitor_stop.wait(self.poll_interval):
            try:
                status = self.engine.status()
            except Exception as e:
                self._submit(self._handle_fatal, f"Engine status unavailable: {e}")
                return

            if status in (EngineStatus.FAILED, EngineStatus.STOPPED):
                self._submit(self._handle_fatal, f"Engine {status.value} unexpectedly")
                return
            if status is not EngineStatus.RUNNING:
                logger.debug(f"Engine reported {status.value} while active")

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _submit(self, fn: Callable[..., TunnelState], *args: Any) -> Optional["Future[TunnelState]"]:
        try:
            return self._executor.submit(fn, *args)
        except RuntimeError:
            logger.debug("Tunnel supervisor is shut down, dropping task")
            return None

    def _transition(self, state: TunnelState) -> None:
        """Set state; caller holds the lock"""
        previous = self._session.state
        self._session.state = state
        self._session.updated_at = time.time()
        logger.debug(f"Tunnel state {previous.value} -> {state.value}")
        self._publish()
        self._state_changed.notify_all()

    def _publish(self) -> None:
        """Publish the session record for out-of-process readers"""
        if self.state_store is None:
            return
        try:
            self.state_store.save(SESSION_STATE_KEY, {**self._session.to_dict(), "pid": os.getpid()})
        except Exception as e:
            logger.warning(f"Failed to publish session state: {e}")
