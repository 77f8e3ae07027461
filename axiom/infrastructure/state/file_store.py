"""
File-based state storage implementation
"""
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional

from ...core.interfaces import StateStore
from ...core.constants import DEFAULT_STATE_DIR, ENGINE_CONFIG_FILENAME, ENGINE_LOG_FILENAME
from ...core.logging import get_logger

logger = get_logger(__name__)


class FileStateStore(StateStore):
    """
    File-based state storage.
    
    Stores state as JSON files in a directory structure:
    - {state_dir}/{name}.json - State data
    - {state_dir}/config.json - Engine config
    - {state_dir}/engine.log - Engine stdout/stderr
    """
    
    def __init__(self, state_dir: Optional[Path] = None):
        """
        Initialize file state store.
        
        Args:
            state_dir: Directory for storing state files
        """
        if state_dir is None:
            state_dir = Path(DEFAULT_STATE_DIR)
        
        self.state_dir = Path(state_dir).expanduser()
        self.state_dir.mkdir(parents=True, exist_ok=True)
    
    def _get_state_file(self, name: str) -> Path:
        """Get state file path for instance"""
        return self.state_dir / f"{name}.json"
    
    @property
    def engine_config_path(self) -> Path:
        return self.state_dir / ENGINE_CONFIG_FILENAME
    
    @property
    def engine_log_path(self) -> Path:
        return self.state_dir / ENGINE_LOG_FILENAME
    
    def save(self, name: str, state: Dict[str, Any]) -> None:
        """Save state for a named instance (atomic replace)"""
        state_file = self._get_state_file(name)
        tmp_file = state_file.with_name(state_file.name + ".tmp")
        tmp_file.write_text(json.dumps(state, indent=2), encoding='utf-8')
        os.replace(tmp_file, state_file)
    
    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """Load state for a named instance"""
        state_file = self._get_state_file(name)
        if not state_file.exists():
            return None
        
        try:
            return json.loads(state_file.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable state file {state_file}: {e}")
            return None
    
    def delete(self, name: str) -> None:
        """Delete state for a named instance"""
        state_file = self._get_state_file(name)
        if state_file.exists():
            state_file.unlink()
    
    def exists(self, name: str) -> bool:
        """Check if state exists for a named instance"""
        return self._get_state_file(name).exists()


def is_process_alive(pid: Optional[int]) -> bool:
    """Check whether a process with this PID exists"""
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError:
        return False
    return True
