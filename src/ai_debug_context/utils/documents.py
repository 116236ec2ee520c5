import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from ..core.errors import ApplyError, DocumentLoadError

logger = logging.getLogger(__name__)


class FileDocumentProvider:
    """
    DocumentProvider backed by the local filesystem.

    Relative paths are resolved against ``root`` (the workspace root).
    Saves are atomic: the new text is written to a sibling temporary file which
    then replaces the original.
    """

    def __init__(self, root: Optional[Union[str, Path]] = None, encoding: str = "utf-8"):
        self.root = Path(root) if root is not None else Path.cwd()
        self.encoding = encoding

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root / p

    def load(self, path: str) -> str:
        target = self._resolve(path)
        try:
            # newline="" keeps line endings intact across a load/save cycle
            with open(target, "r", encoding=self.encoding, newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentLoadError(
                f"Could not read {target}", path=str(target), original_exception=e
            ) from e

    def save(self, path: str, text: str) -> None:
        target = self._resolve(path)
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise ApplyError(
                f"Could not write {target}",
                context={"path": str(target)},
                original_exception=e,
            ) from e

        try:
            with os.fdopen(fd, "w", encoding=self.encoding, newline="") as f:
                f.write(text)
            os.replace(temp_path, target)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                logger.debug(f"Temporary file already gone: {temp_path}")
            raise ApplyError(
                f"Could not write {target}",
                context={"path": str(target)},
                original_exception=e,
            ) from e
        logger.debug(f"Saved document {target}")
