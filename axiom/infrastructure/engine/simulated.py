"""
No-op engine used when no real engine is wanted
"""
from pathlib import Path
from typing import Optional

from ...core.interfaces import EngineController
from ...core.logging import get_logger
from ...domain.tunnel.models import EngineStatus

logger = get_logger(__name__)


class SimulatedEngine(EngineController):
    """Engine stand-in: reports RUNNING right after start(), forwards nothing"""
    
    simulated = True
    
    def __init__(self):
        self._status = EngineStatus.STOPPED
        self.config_path: Optional[Path] = None
    
    def start(self, config_path: Path) -> None:
        self.config_path = Path(config_path)
        self._status = EngineStatus.RUNNING
        logger.info(f"Simulated engine started with {config_path}")
    
    def stop(self) -> None:
        self._status = EngineStatus.STOPPED
        logger.info("Simulated engine stopped")
    
    def status(self) -> EngineStatus:
        return self._status
