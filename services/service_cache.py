"""
In-process cache for the service catalog.

Three regions (all services, per-category, search results) share a single
``last_updated`` stamp and TTL. Filling any region refreshes the shared stamp.
The search region is bounded; on overflow the oldest entries by insertion
order are evicted.
"""
import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from database import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=1)
SEARCH_CACHE_MAX_SIZE = 100
EVICTION_FRACTION = 0.2


class ServiceCatalogCache:
    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        search_max_size: int = SEARCH_CACHE_MAX_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = ttl
        self.search_max_size = search_max_size
        self.clock = clock
        self._lock = threading.Lock()
        self.all_services: Optional[List[Dict[str, Any]]] = None
        self.category_services: Dict[str, List[Dict[str, Any]]] = {}
        self.search_results: Dict[str, List[Dict[str, Any]]] = {}
        self.last_updated: Optional[datetime] = None

    def is_valid(self) -> bool:
        if self.last_updated is None:
            return False
        return self.clock() - self.last_updated < self.ttl

    def invalidate(self, region: Optional[str] = None) -> None:
        with self._lock:
            if region is None:
                self.all_services = None
                self.category_services = {}
                self.search_results = {}
                self.last_updated = None
            elif region == "allServices":
                self.all_services = None
            elif region == "categoryServices":
                self.category_services = {}
            elif region == "searchCache":
                self.search_results = {}
            else:
                self.category_services.pop(region, None)
        logger.debug(f"Service cache invalidated ({region or 'all'})")

    def get_all(self) -> Optional[List[Dict[str, Any]]]:
        if self.is_valid():
            return self.all_services
        return None

    def set_all(self, services: List[Dict[str, Any]]) -> None:
        with self._lock:
            self.all_services = services
            self.last_updated = self.clock()

    def get_category(self, category: str) -> Optional[List[Dict[str, Any]]]:
        if self.is_valid():
            return self.category_services.get(category)
        return None

    def set_category(self, category: str, services: List[Dict[str, Any]]) -> None:
        with self._lock:
            self.category_services[category] = services
            self.last_updated = self.clock()

    @staticmethod
    def search_key(query: Optional[str], category: Optional[str]) -> str:
        return f"{query or ''}_{category or ''}"

    def get_search(self, key: str) -> Optional[List[Dict[str, Any]]]:
        if self.is_valid():
            return self.search_results.get(key)
        return None

    def set_search(self, key: str, services: List[Dict[str, Any]]) -> None:
        with self._lock:
            self.search_results[key] = services
            if len(self.search_results) > self.search_max_size:
                evict = math.ceil(self.search_max_size * EVICTION_FRACTION)
                # dicts keep insertion order and hits never reorder them
                for old_key in list(self.search_results)[:evict]:
                    del self.search_results[old_key]
                logger.debug(f"Evicted {evict} search cache entries")
            self.last_updated = self.clock()
