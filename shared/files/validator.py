"""
Pre-parse checks for fetched artifacts.

Only stat-level information is used; the file is never opened here.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple, Union

from core.errors import ValidationError, ValidationReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileCheck:
    """Result of a passed validation."""
    path: str
    size: int
    extension: str
    extension_supported: bool


class FileValidator:
    """
    Rejects missing, empty and oversized artifacts.

    An extension outside the accepted set only produces a warning: the
    parser sniffs content, so a mislabelled file may still be readable.
    """

    def __init__(self, max_size: int, accepted_extensions: Iterable[str] = (".xls", ".xlsx", ".csv")):
        self.max_size = max_size
        self.accepted_extensions: Tuple[str, ...] = tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in accepted_extensions
        )

    def validate(self, path: Union[str, os.PathLike]) -> FileCheck:
        """
        Validate a local artifact.

        Raises:
            ValidationError: NOT_FOUND, EMPTY or TOO_LARGE
        """
        target = Path(path)
        try:
            stat = target.stat()
        except FileNotFoundError:
            raise ValidationError(ValidationReason.NOT_FOUND, str(target), "file does not exist")

        if not target.is_file():
            raise ValidationError(ValidationReason.NOT_FOUND, str(target), "not a regular file")

        size = stat.st_size
        if size == 0:
            raise ValidationError(ValidationReason.EMPTY, str(target), "file is empty")

        if size > self.max_size:
            raise ValidationError(
                ValidationReason.TOO_LARGE,
                str(target),
                f"file size ({size}) exceeds maximum allowed size ({self.max_size})",
            )

        extension = target.suffix.lower()
        supported = extension in self.accepted_extensions
        if not supported:
            logger.warning(
                f"Unsupported file type '{extension or '<none>'}' for {target.name}, "
                f"accepted: {', '.join(self.accepted_extensions)}"
            )

        logger.debug(f"File validation passed: {target} ({size} bytes)")
        return FileCheck(path=str(target), size=size, extension=extension, extension_supported=supported)
