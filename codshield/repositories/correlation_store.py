"""
Checkout correlation storage.

Entries are keyed by checkout token. Every state change is a compare-and-set
on that single key, independent of profile writes:

- ``create`` succeeds only if the entry is absent, or still exactly the entry
  the caller read;
- ``mark_matched`` succeeds only on an OPEN, unexpired, unmatched entry;
- ``mark_expired`` succeeds only on an OPEN entry.

A failed precondition raises ConcurrentUpdateConflict; callers re-read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from threading import RLock
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from codshield.models.correlation import CheckoutCorrelation, CorrelationState, SweepResult
from codshield.models.identity import HashedIdentity
from codshield.repositories.dynamodb_repo import is_conflict
from codshield.utils.error_handling import ConcurrentUpdateConflict
from codshield.utils.logging_config import get_logger, token_suffix

logger = get_logger(__name__)


class CorrelationStore(ABC):
    """Atomic-per-token storage for checkout correlations."""

    @abstractmethod
    def get(self, checkout_token: str) -> Optional[CheckoutCorrelation]:
        ...

    @abstractmethod
    def create(
        self, entry: CheckoutCorrelation, replacing: Optional[CheckoutCorrelation] = None
    ) -> CheckoutCorrelation:
        ...

    @abstractmethod
    def mark_matched(self, checkout_token: str, order_id: str, now: datetime) -> CheckoutCorrelation:
        ...

    @abstractmethod
    def mark_expired(self, checkout_token: str, now: datetime) -> bool:
        ...

    @abstractmethod
    def sweep(self, now: datetime, retention: timedelta) -> SweepResult:
        """Expire overdue OPEN entries and purge retired ones past retention."""

    @abstractmethod
    def delete(self, checkout_token: str) -> bool:
        ...


def _same_entry(current: CheckoutCorrelation, expected: CheckoutCorrelation) -> bool:
    return current.state == expected.state and current.created_at == expected.created_at


class InMemoryCorrelationStore(CorrelationStore):
    """Lock-guarded dict; same preconditions as the DynamoDB store."""

    def __init__(self) -> None:
        self._entries: Dict[str, CheckoutCorrelation] = {}
        self._lock = RLock()

    def get(self, checkout_token: str) -> Optional[CheckoutCorrelation]:
        with self._lock:
            entry = self._entries.get(checkout_token)
            return entry.model_copy(deep=True) if entry else None

    def create(
        self, entry: CheckoutCorrelation, replacing: Optional[CheckoutCorrelation] = None
    ) -> CheckoutCorrelation:
        with self._lock:
            current = self._entries.get(entry.checkout_token)
            if replacing is None and current is not None:
                raise ConcurrentUpdateConflict("correlation already exists")
            if replacing is not None and (current is None or not _same_entry(current, replacing)):
                raise ConcurrentUpdateConflict("correlation changed concurrently")
            self._entries[entry.checkout_token] = entry.model_copy(deep=True)
            return entry

    def mark_matched(self, checkout_token: str, order_id: str, now: datetime) -> CheckoutCorrelation:
        with self._lock:
            current = self._entries.get(checkout_token)
            if current is None or not current.is_matchable(now) or current.matched_order_id:
                raise ConcurrentUpdateConflict("correlation is not matchable")
            matched = current.model_copy(
                update={
                    "state": CorrelationState.MATCHED,
                    "matched_order_id": order_id,
                    "matched_at": now,
                }
            )
            self._entries[checkout_token] = matched
            return matched.model_copy(deep=True)

    def mark_expired(self, checkout_token: str, now: datetime) -> bool:
        with self._lock:
            current = self._entries.get(checkout_token)
            if current is None or current.state is not CorrelationState.OPEN:
                return False
            self._entries[checkout_token] = current.model_copy(
                update={"state": CorrelationState.EXPIRED}
            )
            return True

    def sweep(self, now: datetime, retention: timedelta) -> SweepResult:
        result = SweepResult()
        with self._lock:
            for token, entry in list(self._entries.items()):
                if entry.state is CorrelationState.OPEN and entry.is_past_expiry(now):
                    self._entries[token] = entry.model_copy(update={"state": CorrelationState.EXPIRED})
                    result.expired += 1
                    entry = self._entries[token]
                if entry.state is not CorrelationState.OPEN and entry.expires_at + retention <= now:
                    del self._entries[token]
                    result.purged += 1
        return result

    def delete(self, checkout_token: str) -> bool:
        with self._lock:
            return self._entries.pop(checkout_token, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _epoch(value: datetime) -> int:
    return int(value.timestamp())


class DynamoDbCorrelationStore(CorrelationStore):
    """
    Correlations table keyed by ``checkout_token``.

    ``ttl`` is the DynamoDB TTL attribute (expiry plus retention), so storage
    is reclaimed even if no sweep ever runs.
    """

    def __init__(
        self,
        table_name: str,
        retention: timedelta = timedelta(hours=1),
        region_name: Optional[str] = None,
    ):
        self.table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        self.retention = retention

    def _to_item(self, entry: CheckoutCorrelation) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "checkout_token": entry.checkout_token,
            "state": entry.state.value,
            "created_at": entry.created_at.isoformat(),
            "expires_at": entry.expires_at.isoformat(),
            "expires_epoch": _epoch(entry.expires_at),
            "ttl": _epoch(entry.expires_at + self.retention),
        }
        if entry.identity.phone_hash:
            item["phone_hash"] = entry.identity.phone_hash
        if entry.identity.email_hash:
            item["email_hash"] = entry.identity.email_hash
        if entry.matched_order_id:
            item["matched_order_id"] = entry.matched_order_id
        if entry.matched_at:
            item["matched_at"] = entry.matched_at.isoformat()
        return item

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> CheckoutCorrelation:
        return CheckoutCorrelation(
            checkout_token=item["checkout_token"],
            identity=HashedIdentity(
                phone_hash=item.get("phone_hash"), email_hash=item.get("email_hash")
            ),
            state=CorrelationState(item["state"]),
            matched_order_id=item.get("matched_order_id"),
            created_at=datetime.fromisoformat(item["created_at"]),
            expires_at=datetime.fromisoformat(item["expires_at"]),
            matched_at=datetime.fromisoformat(item["matched_at"]) if item.get("matched_at") else None,
        )

    def get(self, checkout_token: str) -> Optional[CheckoutCorrelation]:
        resp = self.table.get_item(Key={"checkout_token": checkout_token}, ConsistentRead=True)
        item = resp.get("Item")
        return self._from_item(item) if item else None

    def create(
        self, entry: CheckoutCorrelation, replacing: Optional[CheckoutCorrelation] = None
    ) -> CheckoutCorrelation:
        kwargs: Dict[str, Any] = {"Item": self._to_item(entry)}
        if replacing is None:
            kwargs["ConditionExpression"] = "attribute_not_exists(checkout_token)"
        else:
            kwargs["ConditionExpression"] = "#s = :state AND created_at = :created"
            kwargs["ExpressionAttributeNames"] = {"#s": "state"}
            kwargs["ExpressionAttributeValues"] = {
                ":state": replacing.state.value,
                ":created": replacing.created_at.isoformat(),
            }
        try:
            self.table.put_item(**kwargs)
        except ClientError as exc:
            if is_conflict(exc):
                raise ConcurrentUpdateConflict("correlation changed concurrently") from exc
            raise
        return entry

    def mark_matched(self, checkout_token: str, order_id: str, now: datetime) -> CheckoutCorrelation:
        try:
            resp = self.table.update_item(
                Key={"checkout_token": checkout_token},
                UpdateExpression="SET #s = :matched, matched_order_id = :order_id, matched_at = :now",
                ConditionExpression=(
                    "#s = :open AND expires_epoch > :now_epoch "
                    "AND attribute_not_exists(matched_order_id)"
                ),
                ExpressionAttributeNames={"#s": "state"},
                ExpressionAttributeValues={
                    ":matched": CorrelationState.MATCHED.value,
                    ":open": CorrelationState.OPEN.value,
                    ":order_id": order_id,
                    ":now": now.isoformat(),
                    ":now_epoch": _epoch(now),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if is_conflict(exc):
                raise ConcurrentUpdateConflict("correlation is not matchable") from exc
            raise
        return self._from_item(resp["Attributes"])

    def mark_expired(self, checkout_token: str, now: datetime) -> bool:
        try:
            self.table.update_item(
                Key={"checkout_token": checkout_token},
                UpdateExpression="SET #s = :expired",
                ConditionExpression="#s = :open",
                ExpressionAttributeNames={"#s": "state"},
                ExpressionAttributeValues={
                    ":expired": CorrelationState.EXPIRED.value,
                    ":open": CorrelationState.OPEN.value,
                },
            )
        except ClientError as exc:
            if is_conflict(exc):
                return False
            raise
        return True

    def sweep(self, now: datetime, retention: timedelta) -> SweepResult:
        result = SweepResult()
        scan_kwargs: Dict[str, Any] = {
            "FilterExpression": "expires_epoch <= :now_epoch",
            "ExpressionAttributeValues": {":now_epoch": _epoch(now)},
        }
        while True:
            page = self.table.scan(**scan_kwargs)
            for item in page.get("Items", []):
                entry = self._from_item(item)
                if entry.state is CorrelationState.OPEN and self.mark_expired(entry.checkout_token, now):
                    result.expired += 1
                    entry = entry.model_copy(update={"state": CorrelationState.EXPIRED})
                if entry.state is not CorrelationState.OPEN and entry.expires_at + retention <= now:
                    if self.delete(entry.checkout_token):
                        result.purged += 1
            last_key = page.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        logger.info("Correlation sweep finished", extra=result.model_dump())
        return result

    def delete(self, checkout_token: str) -> bool:
        resp = self.table.delete_item(
            Key={"checkout_token": checkout_token}, ReturnValues="ALL_OLD"
        )
        deleted = bool(resp.get("Attributes"))
        if deleted:
            logger.info("Correlation deleted", extra={"checkout_token": token_suffix(checkout_token)})
        return deleted
