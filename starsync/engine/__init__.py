"""Engine components: remote client → page cursor → coordinator → store."""

from .client import GitHubStarsClient, RemoteClient, decode_item
from .coordinator import IngestionCoordinator
from .pagination import PageCursor
from .retry import FetchAbandoned, PageRetrier, RetryContext

__all__ = [
    "FetchAbandoned",
    "GitHubStarsClient",
    "IngestionCoordinator",
    "PageCursor",
    "PageRetrier",
    "RemoteClient",
    "RetryContext",
    "decode_item",
]
