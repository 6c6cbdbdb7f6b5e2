"""
TempFiles - Request-scoped ownership of locally written files.
"""

import logging
import os
from typing import List, Optional, Set


class TempFiles:
    """
    Tracks files written during one request and removes them.

    Use as a context manager: leaving the block releases every registered
    file, whether the block returned, raised, or was cancelled. Each file is
    removed at most once; files that are already gone are ignored.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._paths: List[str] = []
        self._removed: Set[str] = set()

    def __enter__(self) -> "TempFiles":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def paths(self) -> List[str]:
        """Registered files not yet removed."""
        return [p for p in self._paths if p not in self._removed]

    def register(self, path: str) -> str:
        if path not in self._paths:
            self._paths.append(path)
        return path

    def remove(self, path: str) -> None:
        if path in self._removed:
            return
        self._removed.add(path)
        try:
            os.remove(path)
            self.logger.debug("Removed temp file: %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("Could not remove temp file %s: %s", path, e)

    def release(self) -> None:
        """Remove all registered files."""
        for path in self.paths:
            self.remove(path)
