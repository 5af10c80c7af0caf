"""
Exception hierarchy for Webex Status Watcher.

Startup failures carry the process exit code so that operators can tell a
bad configuration from a bad credential from a missing room membership.
"""

# Exit codes for fatal startup failures
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_ROOM_ERROR = 4


class WatcherError(Exception):
    """Base class for all application errors."""

    exit_code = 1


class ConfigError(WatcherError):
    """Invalid or missing configuration."""

    exit_code = EXIT_CONFIG_ERROR


class AuthError(WatcherError):
    """A credential was rejected by a remote service."""

    exit_code = EXIT_AUTH_ERROR


class RoomMembershipError(WatcherError):
    """The bot is not a member of a required room."""

    exit_code = EXIT_ROOM_ERROR

    def __init__(self, room_name: str, room_id: str):
        super().__init__(f"Bot is not a member of the {room_name} room ({room_id})")
        self.room_name = room_name
        self.room_id = room_id


class FetchError(WatcherError):
    """A feed could not be retrieved or understood."""


class NetworkError(FetchError):
    """
    Transient network failure.

    Attributes
    ----------
    status : int | None
        HTTP status code when the failure was an error response.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class MalformedFeedError(FetchError):
    """The response body is not a recognisable syndication document."""


class DispatchError(WatcherError):
    """A message could not be delivered."""


class RateLimitError(DispatchError):
    """The remote API asked us to slow down."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class PermanentDispatchError(DispatchError):
    """Delivery failed in a way retrying will not fix (bad target, 4xx)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TicketError(WatcherError):
    """The ticketing system rejected a request."""


class AmbiguousTicketMatchError(TicketError):
    """More than one ticket matches an entry identifier."""

    def __init__(self, identifier: str, keys: list[str]):
        super().__init__(
            f"{len(keys)} tickets match identifier '{identifier}': {', '.join(keys)}"
        )
        self.identifier = identifier
        self.keys = keys
