"""
Abstract base class for file-backed input sources.
Provides a unified interface for loading weather, soil and cultivar files.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Union

from agrorisk.core.exceptions import DataError, ErrorContext


class FileSource(ABC):
    """
    Abstract base class for all file sources.
    Implements common patterns: path checks and logging.
    """

    def __init__(self, name: str, path: Union[str, Path]):
        self.name = name
        self.path = Path(path)
        self.logger = logging.getLogger(f"agrorisk.data.{name}")

    def _check_exists(self) -> None:
        if not self.path.exists():
            raise DataError(
                f"{self.name} file not found: {self.path}",
                ErrorContext(component=self.__class__.__name__, operation="load"),
            )

    @abstractmethod
    def load(self) -> Any:
        """
        Read and validate the file.
        Must be implemented by concrete sources.
        """
        pass
