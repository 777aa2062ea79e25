"""Manual-review queue for events that could not be tied to an identity."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import List, Optional

import boto3

from codshield.models.events import ReviewItem


class ReviewQueue(ABC):
    @abstractmethod
    def put(self, item: ReviewItem) -> None:
        ...


class InMemoryReviewQueue(ReviewQueue):
    def __init__(self) -> None:
        self._items: List[ReviewItem] = []
        self._lock = Lock()

    def put(self, item: ReviewItem) -> None:
        with self._lock:
            self._items.append(item)

    def items(self) -> List[ReviewItem]:
        with self._lock:
            return list(self._items)


class DynamoDbReviewQueue(ReviewQueue):
    """Review items table keyed by ``store_id`` with ``review_id`` as sort key."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        self.table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)

    def put(self, item: ReviewItem) -> None:
        self.table.put_item(Item=item.model_dump(mode="json"))

    def query_recent(self, store_id: str, limit: int = 20) -> List[ReviewItem]:
        """Most recent review items for one store."""
        resp = self.table.query(
            KeyConditionExpression="store_id = :sid",
            ExpressionAttributeValues={":sid": store_id},
            ScanIndexForward=False,
            Limit=limit,
        )
        return [ReviewItem.model_validate(item) for item in resp.get("Items", [])]
