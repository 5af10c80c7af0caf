"""
Protocol definitions for the external collaborators.

The pipeline and the application only talk to these interfaces, so tests
can substitute fakes and decorators can be stacked without changes.
"""

from typing import Any, Protocol, runtime_checkable

from webex_status.models import OutboundMessage


@runtime_checkable
class ChatClient(Protocol):
    """
    Protocol for a chat backend.

    Implementations raise the typed errors from :mod:`webex_status.errors`:
    ``NetworkError`` and ``RateLimitError`` for transient failures,
    ``AuthError`` and ``PermanentDispatchError`` for permanent ones.
    """

    async def get_self(self) -> dict[str, Any]:
        """
        Return the identity behind the credential.

        Returns
        -------
        dict[str, Any]
            At least ``displayName`` and ``emails``.
        """
        ...

    async def get_room(self, room_id: str) -> dict[str, Any]:
        """
        Look up a room the bot is a member of.

        Returns
        -------
        dict[str, Any]
            At least ``title``.
        """
        ...

    async def create_message(self, room_id: str, html: str) -> dict[str, Any]:
        """Post an HTML message to a room and return the acknowledgement."""
        ...

    async def close(self) -> None:
        """Release any resources held by the client."""
        ...


@runtime_checkable
class MessageSender(Protocol):
    """Protocol shared by dispatchers and their decorators."""

    async def send(self, target: str, message: OutboundMessage) -> bool:
        """
        Deliver a message.

        Parameters
        ----------
        target : str
            Room identifier.
        message : OutboundMessage
            The message to deliver.

        Returns
        -------
        bool
            True if the message was delivered.
        """
        ...
