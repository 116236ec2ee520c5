"""
Protocol definitions for the host-environment seams of the analysis engine.

The engine never touches editors, terminals or chat panels directly. It talks to
them through these protocols, which lets tests substitute in-memory doubles and
lets the CLI plug in filesystem and subprocess implementations.
"""

from typing import Callable, Protocol, runtime_checkable

from .models import ConfirmChoice, FixCandidate


@runtime_checkable
class DocumentProvider(Protocol):
    """Read and write whole text documents by path."""

    def load(self, path: str) -> str:
        """
        Return the full text of the document at ``path``.

        Raises:
            DocumentLoadError: If the document cannot be read.
        """
        ...

    def save(self, path: str, text: str) -> None:
        """
        Replace the document at ``path`` with ``text`` and persist it.

        Raises:
            ApplyError: If the document cannot be written.
        """
        ...


@runtime_checkable
class CommandSink(Protocol):
    """Launch a shell command visibly to the user, without awaiting completion."""

    def run(self, command: str) -> None: ...


@runtime_checkable
class AssistantChannel(Protocol):
    """
    Asynchronous channel to an external AI assistant.
    """

    def is_available(self) -> bool:
        """Whether the assistant can currently accept a request."""
        ...

    async def send(self, context: str) -> str:
        """
        Send a context document and return the assistant's reply.

        Raises:
            Exception: Any transport error; callers treat it as a failed hand-off.
        """
        ...


@runtime_checkable
class HandoffSink(Protocol):
    """Fallback destination for a context document (clipboard, file, ...)."""

    def deliver(self, context: str) -> None: ...


ConfirmPrompt = Callable[[FixCandidate], ConfirmChoice]
