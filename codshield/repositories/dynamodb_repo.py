"""
DynamoDB-backed Profile Store.

Profiles table: partition key ``identity_hash``, integer ``version``.
Identity index table: partition key ``identity_hash`` -> ``primary_hash``.
A commit writes the profile and its index entries in one TransactWriteItems
call, conditioned on the profile version.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from codshield.models.profile import CustomerProfile
from codshield.repositories.profile_store import ProfileStore
from codshield.utils.error_handling import ConcurrentUpdateConflict
from codshield.utils.logging_config import get_logger, hash_prefix

logger = get_logger(__name__)

_serializer = TypeSerializer()

CONFLICT_CODES = {"ConditionalCheckFailedException", "TransactionConflictException"}
# Cancellation reasons inside TransactionCanceledException drop the suffix.
CANCELLATION_CONFLICT_CODES = {"ConditionalCheckFailed", "TransactionConflict"}


def to_dynamo_value(value: Any) -> Any:
    """Plain Python -> DynamoDB-safe value (Decimal numbers, ISO datetimes)."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_dynamo_value(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [to_dynamo_value(v) for v in value]
    if isinstance(value, set):
        return {to_dynamo_value(v) for v in value}
    return value


def from_dynamo_value(value: Any) -> Any:
    """Reverse of ``to_dynamo_value`` for numbers and containers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo_value(v) for v in value]
    if isinstance(value, set):
        return {from_dynamo_value(v) for v in value}
    return value


def is_conflict(exc: ClientError) -> bool:
    """True for failed conditions, including inside a cancelled transaction."""
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    if code in CONFLICT_CODES:
        return True
    if code == "TransactionCanceledException":
        reasons = exc.response.get("CancellationReasons") or []
        return any(
            reason.get("Code") in CANCELLATION_CONFLICT_CODES | CONFLICT_CODES for reason in reasons
        )
    return False


def profile_to_item(profile: CustomerProfile) -> Dict[str, Any]:
    # JSON mode turns sets into lists, which DynamoDB stores even when empty.
    return to_dynamo_value(profile.model_dump(mode="json"))


def item_to_profile(item: Dict[str, Any]) -> CustomerProfile:
    data = from_dynamo_value(dict(item))
    data.setdefault("secondary_hashes", set())
    data.setdefault("applied_events", set())
    return CustomerProfile.model_validate(data)


class DynamoDbProfileStore(ProfileStore):
    """Profile Store over two DynamoDB tables with optimistic versioning."""

    def __init__(self, profiles_table: str, index_table: str, region_name: Optional[str] = None):
        resource = boto3.resource("dynamodb", region_name=region_name)
        self.client = boto3.client("dynamodb", region_name=region_name)
        self.profiles_table_name = profiles_table
        self.index_table_name = index_table
        self.profiles = resource.Table(profiles_table)
        self.index = resource.Table(index_table)

    def get(self, identity_hash: str) -> Optional[CustomerProfile]:
        resp = self.profiles.get_item(Key={"identity_hash": identity_hash}, ConsistentRead=True)
        item = resp.get("Item")
        return item_to_profile(item) if item else None

    def owner_of(self, identity_hash: str) -> Optional[str]:
        resp = self.index.get_item(Key={"identity_hash": identity_hash}, ConsistentRead=True)
        item = resp.get("Item")
        return item.get("primary_hash") if item else None

    def _serialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {key: _serializer.serialize(value) for key, value in item.items()}

    def commit(self, profile: CustomerProfile, expected_version: int) -> CustomerProfile:
        stored = profile.model_copy(update={"version": expected_version + 1}, deep=True)
        put_profile: Dict[str, Any] = {
            "TableName": self.profiles_table_name,
            "Item": self._serialize(profile_to_item(stored)),
        }
        if expected_version == 0:
            put_profile["ConditionExpression"] = "attribute_not_exists(identity_hash)"
        else:
            put_profile["ConditionExpression"] = "#v = :expected"
            put_profile["ExpressionAttributeNames"] = {"#v": "version"}
            put_profile["ExpressionAttributeValues"] = {
                ":expected": _serializer.serialize(expected_version)
            }

        actions: List[Dict[str, Any]] = [{"Put": put_profile}]
        self_value = _serializer.serialize(stored.identity_hash)
        # An index entry may only be (re)written by the profile that owns it.
        for secondary in sorted(stored.secondary_hashes):
            actions.append(
                {
                    "Put": {
                        "TableName": self.index_table_name,
                        "Item": self._serialize(
                            {"identity_hash": secondary, "primary_hash": stored.identity_hash}
                        ),
                        "ConditionExpression": "attribute_not_exists(identity_hash) OR primary_hash = :self",
                        "ExpressionAttributeValues": {":self": self_value},
                    }
                }
            )
        # A hash is either one profile's primary or one profile's secondary, never both.
        actions.append(
            {
                "ConditionCheck": {
                    "TableName": self.index_table_name,
                    "Key": self._serialize({"identity_hash": stored.identity_hash}),
                    "ConditionExpression": "attribute_not_exists(identity_hash)",
                }
            }
        )
        for secondary in sorted(stored.secondary_hashes):
            actions.append(
                {
                    "ConditionCheck": {
                        "TableName": self.profiles_table_name,
                        "Key": self._serialize({"identity_hash": secondary}),
                        "ConditionExpression": "attribute_not_exists(identity_hash)",
                    }
                }
            )

        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as exc:
            if is_conflict(exc):
                raise ConcurrentUpdateConflict(
                    f"profile {hash_prefix(stored.identity_hash)} changed concurrently"
                ) from exc
            raise
        return stored

    def delete(self, identity_hash: str) -> bool:
        profile = self.get(identity_hash)
        if profile is None:
            return False

        actions: List[Dict[str, Any]] = [
            {
                "Delete": {
                    "TableName": self.profiles_table_name,
                    "Key": self._serialize({"identity_hash": identity_hash}),
                }
            }
        ]
        for secondary in sorted(profile.secondary_hashes):
            if self.owner_of(secondary) != identity_hash:
                # Listed here but indexed to another profile; not ours to remove.
                continue
            actions.append(
                {
                    "Delete": {
                        "TableName": self.index_table_name,
                        "Key": self._serialize({"identity_hash": secondary}),
                        "ConditionExpression": "attribute_not_exists(identity_hash) OR primary_hash = :p",
                        "ExpressionAttributeValues": {":p": _serializer.serialize(identity_hash)},
                    }
                }
            )
        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as exc:
            if is_conflict(exc):
                raise ConcurrentUpdateConflict("profile changed during deletion") from exc
            raise
        logger.info("Profile deleted from DynamoDB", extra={"identity_hash": hash_prefix(identity_hash)})
        return True
