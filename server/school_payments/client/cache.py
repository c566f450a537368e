"""
school_payments/client/cache.py
Query cache with typed keys and topic-driven invalidation
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Tuple
import logging

logger = logging.getLogger(__name__)


class Resource(str, Enum):
    FEES = "fees"
    PAYMENTS = "payments"
    FINANCE_SUMMARY = "finance_summary"


class Topic(str, Enum):
    PAYMENT_SUBMITTED = "payment.submitted"
    PAYMENT_VERIFIED = "payment.verified"
    PAYMENT_REJECTED = "payment.rejected"
    PAYMENT_CONFLICT = "payment.conflict"


# Topic -> resources whose cached views it makes stale
INVALIDATES: Dict[Topic, FrozenSet[Resource]] = {
    Topic.PAYMENT_SUBMITTED: frozenset({Resource.FEES, Resource.PAYMENTS, Resource.FINANCE_SUMMARY}),
    Topic.PAYMENT_VERIFIED: frozenset({Resource.FEES, Resource.PAYMENTS, Resource.FINANCE_SUMMARY}),
    Topic.PAYMENT_REJECTED: frozenset({Resource.FEES, Resource.PAYMENTS, Resource.FINANCE_SUMMARY}),
    Topic.PAYMENT_CONFLICT: frozenset({Resource.FEES, Resource.PAYMENTS, Resource.FINANCE_SUMMARY}),
}


@dataclass(frozen=True)
class QueryKey:
    resource: Resource
    params: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def of(cls, resource: Resource, **params: Any) -> "QueryKey":
        """Build a key from keyword filters; None values are left out"""
        items = tuple(sorted((k, str(v)) for k, v in params.items() if v is not None))
        return cls(resource, items)


Subscriber = Callable[[Topic, List[QueryKey]], None]


class QueryCache:
    """
    Holds fetched views keyed by QueryKey.

    Entries are dropped, never patched, when a topic touching their resource
    is published; the next read refetches. Subscribers are told which keys
    went away so open views can reload them. Not thread-safe.
    """

    def __init__(self):
        self._entries: Dict[QueryKey, Any] = {}
        self._subscribers: List[Subscriber] = []

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def get(self, key: QueryKey, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = value

    def fetch(self, key: QueryKey, loader: Callable[[], Any]) -> Any:
        """Return the cached value for key, loading and storing it on a miss"""
        if key not in self._entries:
            self._entries[key] = loader()
        return self._entries[key]

    def invalidate(self, resource: Resource) -> List[QueryKey]:
        dropped = [key for key in self._entries if key.resource == resource]
        for key in dropped:
            del self._entries[key]
        return dropped

    def publish(self, topic: Topic) -> List[QueryKey]:
        """Invalidate every resource the topic affects and notify subscribers"""
        dropped: List[QueryKey] = []
        for resource in sorted(INVALIDATES[topic], key=lambda r: r.value):
            dropped.extend(self.invalidate(resource))

        logger.debug(f"{topic.value} invalidated {len(dropped)} cached views")
        for subscriber in list(self._subscribers):
            subscriber(topic, dropped)
        return dropped

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it"""
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        return unsubscribe

    def clear(self) -> None:
        self._entries.clear()
