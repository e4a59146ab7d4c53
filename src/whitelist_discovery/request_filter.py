"""Fast path check consulted before every proxied remote fetch."""

from whitelist_discovery.models import DiscoveryStatus
from whitelist_discovery.store import WhitelistStore
from whitelist_discovery.utils.url_utils import first_segment


class RequestFilter:
    """Answers whether a path may exist on a repository's remote.

    The whitelist is only an optimization: without an ENABLED record every
    path is allowed. Lookups read the store's current record and never do I/O.
    """

    def __init__(self, store: WhitelistStore):
        self._store = store

    def may_exist(self, repository_id: str, request_path: str) -> bool:
        record = self._store.get(repository_id)
        if record is None or record.status != DiscoveryStatus.ENABLED:
            return True

        segment = first_segment(request_path)
        if segment is None:
            return True
        return segment in record.top_level_segments
