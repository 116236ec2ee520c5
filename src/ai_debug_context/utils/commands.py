import logging
import shlex
import subprocess
from pathlib import Path
from typing import Optional, Union

from ..core.errors import ApplyError, StorageError

logger = logging.getLogger(__name__)


class SubprocessCommandSink:
    """
    CommandSink that launches each command as a child process.

    The process inherits the terminal, so its output stays visible to the user,
    and it is not waited for.
    """

    def __init__(self, cwd: Optional[Union[str, Path]] = None):
        self.cwd = str(cwd) if cwd is not None else None

    def run(self, command: str) -> None:
        try:
            args = shlex.split(command)
        except ValueError as e:
            raise ApplyError(
                f"Malformed command: {command}", original_exception=e
            ) from e
        if not args:
            raise ApplyError("Empty command")

        logger.info(f"Launching command: {command}")
        try:
            subprocess.Popen(args, cwd=self.cwd)
        except OSError as e:
            raise ApplyError(
                f"Could not launch command: {command}",
                context={"cwd": self.cwd},
                original_exception=e,
            ) from e


class FileHandoffSink:
    """HandoffSink that writes the context document to a Markdown file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def deliver(self, context: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(context, encoding="utf-8")
        except OSError as e:
            raise StorageError(
                f"Could not write hand-off file {self.path}", original_exception=e
            ) from e
        logger.info(f"Context document written to {self.path}")
