"""
Capture interface implementations
"""
import subprocess
from typing import List, Optional, Sequence

from ...core.constants import DEFAULT_CAPTURE_ADDRESS, DEFAULT_CAPTURE_DEVICE, DEFAULT_CAPTURE_MTU
from ...core.exceptions import InterfaceAcquisitionFailure
from ...core.interfaces import CaptureInterface
from ...core.logging import get_logger
from ...domain.tunnel.models import CaptureHandle

logger = get_logger(__name__)


class LinuxTunInterface(CaptureInterface):
    """
    TUN device managed with iproute2.
    
    acquire():
        ip link delete <device>             (only if a stale one exists)
        ip tuntap add dev <device> mode tun
        ip addr add <address> dev <device>
        ip link set dev <device> mtu <mtu> up
        ip route add <route> dev <device>   (per route)
    release():
        ip link delete <device>
    
    Requires CAP_NET_ADMIN.
    """
    
    def __init__(
        self,
        device: str = DEFAULT_CAPTURE_DEVICE,
        address: str = DEFAULT_CAPTURE_ADDRESS,
        mtu: int = DEFAULT_CAPTURE_MTU,
        routes: Optional[Sequence[str]] = None,
        ip_binary: str = "ip",
        timeout: int = 10,
    ):
        self.device = device
        self.address = address
        self.mtu = mtu
        self.routes = list(routes or [])
        self.ip_binary = ip_binary
        self.timeout = timeout
    
    def acquire(self) -> CaptureHandle:
        """
        Create and configure the TUN device.
        
        Raises:
            InterfaceAcquisitionFailure: If any step fails (device is rolled back)
        """
        if self._device_exists():
            # Left behind by a supervisor that was killed before cleaning up
            logger.warning(f"Removing stale TUN device {self.device}")
            self._delete_device()
        
        created = False
        try:
            self._ip("tuntap", "add", "dev", self.device, "mode", "tun")
            created = True
            self._ip("addr", "add", self.address, "dev", self.device)
            self._ip("link", "set", "dev", self.device, "mtu", str(self.mtu), "up")
            for route in self.routes:
                self._ip("route", "add", route, "dev", self.device)
        except InterfaceAcquisitionFailure:
            if created:
                self._delete_device()
            raise
        
        logger.info(f"TUN device {self.device} up ({self.address}, mtu {self.mtu})")
        return CaptureHandle(device=self.device, address=self.address, mtu=self.mtu, managed=True)
    
    def release(self, handle: CaptureHandle) -> None:
        """Delete the TUN device (routes go with it)"""
        if handle.released:
            return
        self._delete_device(handle.device)
        handle.released = True
        logger.info(f"TUN device {handle.device} removed")
    
    def _delete_device(self, device: Optional[str] = None) -> None:
        try:
            self._ip("link", "delete", device or self.device)
        except InterfaceAcquisitionFailure as e:
            logger.warning(f"Failed to delete TUN device: {e}")
    
    def _device_exists(self) -> bool:
        try:
            self._ip("link", "show", "dev", self.device)
        except InterfaceAcquisitionFailure:
            return False
        return True
    
    def _ip(self, *args: str) -> None:
        cmd: List[str] = [self.ip_binary, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise InterfaceAcquisitionFailure(f"'{' '.join(cmd)}' failed: {e}") from e
        
        if result.returncode != 0:
            raise InterfaceAcquisitionFailure(
                f"'{' '.join(cmd)}' exited with {result.returncode}: {result.stderr.strip()}"
            )


class NullCaptureInterface(CaptureInterface):
    """Capture interface that touches nothing, for simulation or external setups"""
    
    def __init__(self, device: str = DEFAULT_CAPTURE_DEVICE):
        self.device = device
    
    def acquire(self) -> CaptureHandle:
        return CaptureHandle(device=self.device)
    
    def release(self, handle: CaptureHandle) -> None:
        handle.released = True
