"""
Core interfaces for dependency injection
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.tunnel.models import CaptureHandle, EngineStatus


class StateStore(ABC):
    """State storage interface"""
    
    @abstractmethod
    def save(self, name: str, state: Dict[str, Any]) -> None:
        """Save state for a named instance"""
        pass
    
    @abstractmethod
    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """Load state for a named instance"""
        pass
    
    @abstractmethod
    def delete(self, name: str) -> None:
        """Delete state for a named instance"""
        pass
    
    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if state exists for a named instance"""
        pass


class EngineController(ABC):
    """
    Control boundary of the external proxy engine.
    
    The engine is a black box: it reads a JSON config at start and
    reports its health through status().
    """
    
    simulated: bool = False
    
    @abstractmethod
    def start(self, config_path: Path) -> None:
        """Launch the engine with the given config file"""
        pass
    
    @abstractmethod
    def stop(self) -> None:
        """Stop the engine"""
        pass
    
    @abstractmethod
    def status(self) -> "EngineStatus":
        """Report current engine status"""
        pass
    
    @property
    def pid(self) -> Optional[int]:
        """OS process id of the engine, None when there is no process"""
        return None


class CaptureInterface(ABC):
    """OS capture interface (virtual network device) provider"""
    
    @abstractmethod
    def acquire(self) -> "CaptureHandle":
        """Establish the interface and hand over its ownership"""
        pass
    
    @abstractmethod
    def release(self, handle: "CaptureHandle") -> None:
        """Tear the interface down"""
        pass
