"""
DynamoDB service for the family wishlist system.

This module owns every read and write against the single wishlist table.
Uniqueness rules (emails, invite codes, category names, the one active
reservation per item) are enforced here with guard items, condition
expressions and transactions, and storage failures that carry a business
meaning are translated into domain errors.
"""

import logging
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

import boto3
import botocore

from models.dynamodb import (CategoryNameItem, EmailGuardItem,
                             EntityPointerItem, FirstUserGuardItem,
                             InviteCodeItem, active_reservation_key,
                             category_key, category_name_key,
                             category_pointer_key, email_key, family_key,
                             first_user_key, invite_key, item_pointer_key,
                             member_key, refresh_token_key, user_key,
                             wishlist_item_key)
from models.family import Category, Family, FamilyMember
from models.users import RefreshToken, UserBase
from models.wishlist import PriceSnapshot, Reservation, WishlistItem
from utils.errors import (AlreadyMember, AlreadyReserved, CategoryNameTaken,
                          ConcurrentModification, EmailAlreadyRegistered,
                          FamilyFull, NotFound, ReservationRequired,
                          WishlistError)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DEFAULT_TABLE_NAME = "FamilyWishlistTable"
USER_INDEX = "GSI1"

# Shared by the management CLI and the test suite.
TABLE_DEFINITION = {
    "KeySchema": [
        {"AttributeName": "PK", "KeyType": "HASH"},
        {"AttributeName": "SK", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [
        {"AttributeName": "PK", "AttributeType": "S"},
        {"AttributeName": "SK", "AttributeType": "S"},
        {"AttributeName": "GSI1PK", "AttributeType": "S"},
        {"AttributeName": "GSI1SK", "AttributeType": "S"},
    ],
    "GlobalSecondaryIndexes": [
        {
            "IndexName": USER_INDEX,
            "KeySchema": [
                {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        },
    ],
    "BillingMode": "PAY_PER_REQUEST",
}

_dynamodb_resource = None


def _get_resource():
    """Create the shared DynamoDB resource on first use and reuse it on warm starts."""
    global _dynamodb_resource
    if _dynamodb_resource is None:
        _dynamodb_resource = boto3.resource("dynamodb")
    return _dynamodb_resource


def create_table(dynamodb_resource=None, table_name: str = None):
    """
    Creates the wishlist table from TABLE_DEFINITION and waits until it exists.

    :param dynamodb_resource: Resource to create the table with.
    :param table_name: Name of the table; defaults to TABLE_NAME.
    :return: The boto3 Table resource.
    """
    resource = dynamodb_resource or _get_resource()
    table_name = table_name or os.environ.get("TABLE_NAME", DEFAULT_TABLE_NAME)
    try:
        table = resource.create_table(TableName=table_name, **TABLE_DEFINITION)
        table.wait_until_exists()
        logger.info("Created table %s", table_name)
        return table
    except botocore.exceptions.ClientError as err:
        logger.error(
            "Couldn't create table %s. Error: %s: %s",
            table_name,
            err.response["Error"]["Code"],
            err.response["Error"]["Message"],
        )
        raise


class WishlistTable:
    """
    Encapsulates operations on the Amazon DynamoDB family wishlist table.

    The resource is injectable so tests can hand in a mocked one; Lambda
    handlers use the module-level instance from get_table().
    """

    def __init__(self, table_name: str = None, dynamodb_resource=None):
        """
        Initialize the DynamoDB table connection.

        :param table_name: Name of the DynamoDB table.
        :param dynamodb_resource: boto3 DynamoDB resource; the shared one by default.
        """
        if table_name is None:
            table_name = os.environ.get("TABLE_NAME", DEFAULT_TABLE_NAME)

        resource = dynamodb_resource or _get_resource()
        self.table = resource.Table(table_name)
        self.client = resource.meta.client

    # Low-level helpers

    def _log_client_error(self, action: str, err: botocore.exceptions.ClientError):
        logger.error(
            "Couldn't %s in table %s. Error: %s: %s",
            action,
            self.table.name,
            err.response["Error"]["Code"],
            err.response["Error"]["Message"],
        )

    def _get(self, key: Dict[str, str], action: str) -> Optional[Dict[str, Any]]:
        try:
            return self.table.get_item(Key=key, ConsistentRead=True).get("Item")
        except botocore.exceptions.ClientError as err:
            self._log_client_error(action, err)
            raise

    def _put(self, item: Dict[str, Any], action: str) -> None:
        try:
            self.table.put_item(Item=item)
        except botocore.exceptions.ClientError as err:
            self._log_client_error(action, err)
            raise

    def _query(self, action: str, **kwargs) -> List[Dict[str, Any]]:
        """Run a query and follow LastEvaluatedKey until every page is read."""
        items = []
        try:
            while True:
                response = self.table.query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return items
                kwargs["ExclusiveStartKey"] = last_key
        except botocore.exceptions.ClientError as err:
            self._log_client_error(action, err)
            raise

    def _query_prefix(
        self, pk: str, sk_prefix: Optional[str], action: str
    ) -> List[Dict[str, Any]]:
        if not sk_prefix:
            return self._query(
                action,
                KeyConditionExpression="PK = :pk",
                ExpressionAttributeValues={":pk": pk},
            )
        return self._query(
            action,
            KeyConditionExpression="PK = :pk AND begins_with(SK, :sk_prefix)",
            ExpressionAttributeValues={":pk": pk, ":sk_prefix": sk_prefix},
        )

    def _query_user_index(
        self,
        user_id: str,
        sk_prefix: Optional[str],
        action: str,
        newest_first: bool = False,
    ) -> List[Dict[str, Any]]:
        condition = "GSI1PK = :pk"
        values = {":pk": f"USER#{user_id}"}
        if sk_prefix:
            condition += " AND begins_with(GSI1SK, :sk_prefix)"
            values[":sk_prefix"] = sk_prefix
        return self._query(
            action,
            IndexName=USER_INDEX,
            KeyConditionExpression=condition,
            ExpressionAttributeValues=values,
            ScanIndexForward=not newest_first,
        )

    def _transact(
        self,
        actions: List[Dict[str, Any]],
        action: str,
        on_cancel: Callable[[List[str]], WishlistError] = None,
    ) -> None:
        """
        Runs a TransactWriteItems call.

        :param actions: Put/Delete/ConditionCheck entries without TableName.
        :param action: Description used in log messages.
        :param on_cancel: Builds the domain error raised when the transaction is
            cancelled; receives the per-entry cancellation reason codes.
        """
        transact_items = []
        for entry in actions:
            ((kind, body),) = entry.items()
            transact_items.append({kind: {"TableName": self.table.name, **body}})

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "TransactionCanceledException":
                reasons = [
                    reason.get("Code", "None")
                    for reason in err.response.get("CancellationReasons", [])
                ]
                logger.info(
                    "Transaction to %s was cancelled",
                    action,
                    extra={"cancellation_reasons": reasons},
                )
                if on_cancel is not None:
                    raise on_cancel(reasons) from err
                raise ConcurrentModification() from err
            self._log_client_error(action, err)
            raise

    def _batch_delete(self, keys: Iterable[Dict[str, str]], action: str) -> int:
        deleted = 0
        try:
            with self.table.batch_writer(overwrite_by_pkeys=["PK", "SK"]) as batch:
                for key in keys:
                    batch.delete_item(Key={"PK": key["PK"], "SK": key["SK"]})
                    deleted += 1
        except botocore.exceptions.ClientError as err:
            self._log_client_error(action, err)
            raise
        return deleted

    @staticmethod
    def _put_action(item: Dict[str, Any], must_not_exist: bool = False) -> Dict[str, Any]:
        body = {"Item": item}
        if must_not_exist:
            body["ConditionExpression"] = "attribute_not_exists(PK)"
        return {"Put": body}

    @staticmethod
    def _delete_action(key: Dict[str, str], **condition) -> Dict[str, Any]:
        return {"Delete": {"Key": key, **condition}}

    @staticmethod
    def _pointer_action(key: Dict[str, str], family_id: str) -> Dict[str, Any]:
        pointer = EntityPointerItem(**key, family_id=family_id)
        return {"Put": {"Item": pointer.to_item()}}

    @staticmethod
    def _member_count_action(
        family_id: str, delta: int, capacity: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Adjusts the family's ACTIVE member counter.

        :param delta: +1 for a member becoming ACTIVE, -1 for one leaving.
        :param capacity: When given, the update fails once the family
            already holds this many ACTIVE members.
        """
        condition = "attribute_exists(PK)"
        values = {":delta": delta}
        if capacity is not None:
            condition += " AND active_member_count < :cap"
            values[":cap"] = capacity
        return {
            "Update": {
                "Key": family_key(family_id),
                "UpdateExpression": "SET active_member_count = active_member_count + :delta",
                "ConditionExpression": condition,
                "ExpressionAttributeValues": values,
            }
        }

    @staticmethod
    def _active_member_condition() -> Dict[str, Any]:
        return {
            "ConditionExpression": "#status = :active",
            "ExpressionAttributeNames": {"#status": "status"},
            "ExpressionAttributeValues": {":active": "ACTIVE"},
        }

    @staticmethod
    def _joining_member_action(member: FamilyMember) -> Dict[str, Any]:
        """Put for a membership becoming ACTIVE; fails if it already is."""
        return {
            "Put": {
                "Item": member.to_dynamodb_item().to_item(),
                "ConditionExpression": "attribute_not_exists(PK) OR #status <> :active",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": {":active": "ACTIVE"},
            }
        }

    @staticmethod
    def _join_cancelled(capacity: int) -> Callable[[List[str]], WishlistError]:
        """Reads the reasons of a transaction ending in [member put, counter update]."""

        def on_cancel(reasons: List[str]) -> WishlistError:
            if reasons[-1:] == ["ConditionalCheckFailed"]:
                return FamilyFull(
                    f"This family has reached the maximum number of members ({capacity})"
                )
            if reasons[-2:-1] == ["ConditionalCheckFailed"]:
                return AlreadyMember()
            return ConcurrentModification()

        return on_cancel

    # Users

    def create_user(self, user: UserBase, claim_first_user: bool = False) -> None:
        """
        Adds a new user together with the guard item that reserves their email.

        :param user: The user to add.
        :param claim_first_user: Also claim the first-account guard; only one
            registration can ever succeed with it.
        :raises EmailAlreadyRegistered: If another user holds the email.
        :raises ConcurrentModification: If another account claimed the
            first-account guard meanwhile.
        """
        guard = EmailGuardItem(**email_key(user.email), user_id=user.user_id)
        actions = [
            self._put_action(user.to_dynamodb_item().to_item(), must_not_exist=True),
            self._put_action(guard.to_item(), must_not_exist=True),
        ]
        if claim_first_user:
            actions.append(
                self._put_action(
                    FirstUserGuardItem(user_id=user.user_id).to_item(), must_not_exist=True
                )
            )

        def on_cancel(reasons: List[str]) -> WishlistError:
            email_taken = reasons[1:2] == ["ConditionalCheckFailed"]
            if not email_taken and reasons[2:3] == ["ConditionalCheckFailed"]:
                return ConcurrentModification("Another account was registered first")
            return EmailAlreadyRegistered()

        self._transact(actions, f"create user {user.user_id}", on_cancel=on_cancel)

    def first_user_claimed(self) -> bool:
        return self._get(first_user_key(), "check first user") is not None

    def get_user(self, user_id: str) -> Optional[UserBase]:
        """
        Gets user data from the table.

        :param user_id: The id of the user to retrieve.
        :return: The user if found, None otherwise.
        """
        item = self._get(user_key(user_id), f"get user {user_id}")
        return UserBase.from_dynamodb_item(item) if item else None

    def get_user_by_email(self, email: str) -> Optional[UserBase]:
        """
        Gets user data by (normalised) email through the email guard item.

        :param email: The email address to search for.
        :return: The user if found, None otherwise.
        """
        guard = self._get(email_key(email.strip().lower()), "get email guard")
        if not guard:
            return None
        return self.get_user(guard["user_id"])

    def put_user(self, user: UserBase) -> None:
        """
        Replaces an existing user profile. The email is immutable, so the
        guard item never changes here.

        :param user: The user with updated information.
        """
        self._put(user.to_dynamodb_item().to_item(), f"put user {user.user_id}")

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserBase]:
        """
        Gets several user profiles at once.

        :param user_ids: Ids of the users to retrieve.
        :return: Mapping of user id to user for the ids that exist.
        """
        users = {}
        for user_id in set(user_ids):
            user = self.get_user(user_id)
            if user:
                users[user_id] = user
        return users

    def delete_user_cascade(self, user: UserBase) -> int:
        """
        Deletes a user and everything they own: memberships, items (with their
        reservations and price history), their reservations on other items,
        refresh tokens, the email guard and the profile.

        ACTIVE memberships are dropped one transaction at a time so each
        family's member counter stays in step; the rest goes in one batch.

        :param user: The user to delete.
        :return: Number of records deleted.
        """
        keys = []
        deleted = 0
        for item in self._query_user_index(user.user_id, None, f"list records of {user.user_id}"):
            if item["SK"].startswith("MEMBER#") and item.get("status") == "ACTIVE":
                self.delete_member(item["family_id"], user.user_id)
                deleted += 1
                continue
            keys.append({"PK": item["PK"], "SK": item["SK"]})
            if item["SK"].startswith("ITEM#"):
                keys.extend(self._item_partition_keys(item["item_id"]))
        keys.append(email_key(user.email))
        keys.append(user_key(user.user_id))

        deleted += self._batch_delete(keys, f"delete user {user.user_id}")
        logger.info(
            "Deleted user and owned records",
            extra={"user_id": user.user_id, "records_deleted": deleted},
        )
        return deleted

    # Refresh tokens

    def put_refresh_token(self, token: RefreshToken) -> None:
        self._put(
            token.to_dynamodb_item().to_item(),
            f"store refresh token of user {token.user_id}",
        )

    def get_refresh_token(self, user_id: str, token_id: str) -> Optional[RefreshToken]:
        item = self._get(
            refresh_token_key(user_id, token_id), f"get refresh token of user {user_id}"
        )
        return RefreshToken.from_dynamodb_item(item) if item else None

    def revoke_refresh_token(self, user_id: str, token_id: str) -> bool:
        """
        Marks one refresh token as revoked.

        :return: False if the token does not exist.
        """
        try:
            self.table.update_item(
                Key=refresh_token_key(user_id, token_id),
                UpdateExpression="SET is_revoked = :revoked",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={":revoked": True},
            )
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            self._log_client_error(f"revoke refresh token of user {user_id}", err)
            raise
        return True

    def revoke_user_refresh_tokens(self, user_id: str) -> int:
        """
        Revokes every live refresh token of a user.

        :return: Number of tokens revoked.
        """
        items = self._query_prefix(
            f"USER#{user_id}", "REFRESH#", f"list refresh tokens of user {user_id}"
        )
        revoked = 0
        for item in items:
            if item.get("is_revoked"):
                continue
            if self.revoke_refresh_token(user_id, item["token_id"]):
                revoked += 1
        return revoked

    # Families and invite codes

    def create_family(
        self, family: Family, admin: FamilyMember, categories: List[Category]
    ) -> None:
        """
        Creates a family, its invite code guard, its first admin membership and
        its default categories in one transaction. The family item starts with
        an ACTIVE member count of one.

        :param family: The family to create.
        :param admin: The creator's ADMIN membership.
        :param categories: Default categories for the family.
        :raises ConcurrentModification: If the invite code was taken meanwhile.
        """
        family.active_member_count = 1
        actions = [
            self._put_action(family.to_dynamodb_item().to_item(), must_not_exist=True),
            self._put_action(
                InviteCodeItem(
                    **invite_key(family.invite_code), family_id=family.family_id
                ).to_item(),
                must_not_exist=True,
            ),
            self._put_action(admin.to_dynamodb_item().to_item()),
        ]
        for category in categories:
            actions.extend(self._category_actions(category))

        self._transact(actions, f"create family {family.family_id}")

    def get_family(self, family_id: str) -> Optional[Family]:
        item = self._get(family_key(family_id), f"get family {family_id}")
        return Family.from_dynamodb_item(item) if item else None

    def get_family_by_invite_code(self, code: str) -> Optional[Family]:
        """
        Resolves an invite code to its family.

        :param code: The invite code.
        :return: The family if the code is live, None otherwise.
        """
        guard = self._get(invite_key(code), "get invite code")
        if not guard:
            return None
        return self.get_family(guard["family_id"])

    def invite_code_exists(self, code: str) -> bool:
        return self._get(invite_key(code), "check invite code") is not None

    def update_family_details(self, family: Family) -> None:
        """
        Stores the editable fields of a family. The member counter and the
        invite code are left to their own writes.

        :raises NotFound: If the family was deleted meanwhile.
        """
        update = "SET #name = :name, currency = :currency, updated_at = :updated_at"
        values = {
            ":name": family.name,
            ":currency": family.currency.value,
            ":updated_at": family.updated_at.isoformat(),
        }
        if family.description is None:
            update += " REMOVE description"
        else:
            update += ", description = :description"
            values[":description"] = family.description

        try:
            self.table.update_item(
                Key=family_key(family.family_id),
                UpdateExpression=update,
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames={"#name": "name"},
                ExpressionAttributeValues=values,
            )
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise NotFound("Family", family.family_id) from err
            self._log_client_error(f"update family {family.family_id}", err)
            raise

    def replace_invite_code(self, family: Family, old_code: str) -> None:
        """
        Stores a family's new invite code; the old code stops resolving in the
        same transaction that claims the new one.

        :param family: The family carrying its new invite code.
        :param old_code: The code being retired.
        """
        self._transact(
            [
                {
                    "Update": {
                        "Key": family_key(family.family_id),
                        "UpdateExpression": "SET invite_code = :code, updated_at = :updated_at",
                        "ConditionExpression": "invite_code = :old_code",
                        "ExpressionAttributeValues": {
                            ":code": family.invite_code,
                            ":old_code": old_code,
                            ":updated_at": family.updated_at.isoformat(),
                        },
                    }
                },
                self._delete_action(invite_key(old_code)),
                self._put_action(
                    InviteCodeItem(
                        **invite_key(family.invite_code), family_id=family.family_id
                    ).to_item(),
                    must_not_exist=True,
                ),
            ],
            f"regenerate invite code for family {family.family_id}",
        )

    def delete_family_cascade(self, family: Family) -> int:
        """
        Deletes a family with its members, categories, items, reservations,
        price history and invite code.

        :param family: The family to delete.
        :return: Number of records deleted.
        """
        keys = []
        for item in self._query_prefix(
            f"FAMILY#{family.family_id}", None, f"list family {family.family_id}"
        ):
            keys.append({"PK": item["PK"], "SK": item["SK"]})
            if item["SK"].startswith("ITEM#"):
                keys.extend(self._item_partition_keys(item["item_id"]))
            elif item["SK"].startswith("CATEGORY#"):
                keys.append(category_pointer_key(item["category_id"]))
        keys.append(invite_key(family.invite_code))

        deleted = self._batch_delete(keys, f"delete family {family.family_id}")
        logger.info(
            "Deleted family and its records",
            extra={"family_id": family.family_id, "records_deleted": deleted},
        )
        return deleted

    # Members

    def get_member(self, family_id: str, user_id: str) -> Optional[FamilyMember]:
        """
        Gets the unique membership row for (user, family).

        :param family_id: The family id.
        :param user_id: The user id.
        :return: The membership if it exists, None otherwise.
        """
        item = self._get(
            member_key(family_id, user_id), f"get member {user_id} of family {family_id}"
        )
        return FamilyMember.from_dynamodb_item(item) if item else None

    def list_family_members(self, family_id: str) -> List[FamilyMember]:
        items = self._query_prefix(
            f"FAMILY#{family_id}", "MEMBER#", f"list members of family {family_id}"
        )
        return [FamilyMember.from_dynamodb_item(item) for item in items]

    def list_user_memberships(self, user_id: str) -> List[FamilyMember]:
        items = self._query_user_index(
            user_id, "FAMILY#", f"list memberships of user {user_id}"
        )
        return [FamilyMember.from_dynamodb_item(item) for item in items]

    def put_member(self, member: FamilyMember) -> None:
        """
        Writes a membership row as-is. The family's member counter is not
        touched; status changes go through add_member, deactivate_member and
        delete_member.
        """
        self._put(
            member.to_dynamodb_item().to_item(),
            f"put member {member.user_id} of family {member.family_id}",
        )

    def add_member(self, member: FamilyMember, capacity: int) -> None:
        """
        Writes an ACTIVE membership (new, or reactivating an old row) and
        counts it against the family's cap in one transaction.

        :param member: The ACTIVE membership to write.
        :param capacity: Maximum number of ACTIVE members in the family.
        :raises FamilyFull: If the family already has `capacity` ACTIVE members.
        :raises AlreadyMember: If the membership became ACTIVE meanwhile.
        """
        self._transact(
            [
                self._joining_member_action(member),
                self._member_count_action(member.family_id, 1, capacity),
            ],
            f"add member {member.user_id} to family {member.family_id}",
            on_cancel=self._join_cancelled(capacity),
        )

    def deactivate_member(self, member: FamilyMember) -> None:
        """
        Marks an ACTIVE membership INACTIVE and releases its place in the family.

        :param member: The membership, already carrying its INACTIVE status.
        :raises ConcurrentModification: If the row was no longer ACTIVE.
        """
        put = self._put_action(member.to_dynamodb_item().to_item())
        put["Put"].update(self._active_member_condition())
        self._transact(
            [put, self._member_count_action(member.family_id, -1)],
            f"deactivate member {member.user_id} of family {member.family_id}",
        )

    def delete_member(self, family_id: str, user_id: str) -> None:
        """
        Hard-deletes an ACTIVE membership and releases its place in the family.

        :raises ConcurrentModification: If the row was no longer ACTIVE.
        """
        self._transact(
            [
                self._delete_action(
                    member_key(family_id, user_id), **self._active_member_condition()
                ),
                self._member_count_action(family_id, -1),
            ],
            f"delete member {user_id} of family {family_id}",
        )

    def set_member_role(self, member: FamilyMember) -> None:
        """
        Stores a member's new role.

        :raises NotFound: If the membership is no longer ACTIVE.
        """
        condition = self._active_member_condition()
        try:
            self.table.update_item(
                Key=member_key(member.family_id, member.user_id),
                UpdateExpression="SET #role = :role",
                ConditionExpression=condition["ConditionExpression"],
                ExpressionAttributeNames={
                    "#role": "role",
                    **condition["ExpressionAttributeNames"],
                },
                ExpressionAttributeValues={
                    ":role": member.role.value,
                    **condition["ExpressionAttributeValues"],
                },
            )
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise NotFound("Family member", member.user_id) from err
            self._log_client_error(
                f"change role of member {member.user_id} of family {member.family_id}", err
            )
            raise

    def switch_membership(
        self, leaving: List[FamilyMember], joining: FamilyMember, capacity: int
    ) -> None:
        """
        Deletes the given ACTIVE memberships and writes the new one atomically,
        keeping every family's member counter in step.

        :param leaving: Memberships to drop; must not include the joined family.
        :param joining: The ACTIVE membership to write.
        :param capacity: Maximum number of ACTIVE members in the joined family.
        :raises FamilyFull: If the joined family is at capacity.
        :raises AlreadyMember: If the new membership became ACTIVE meanwhile.
        """
        actions = []
        for member in leaving:
            actions.append(
                self._delete_action(
                    member_key(member.family_id, member.user_id),
                    **self._active_member_condition(),
                )
            )
            actions.append(self._member_count_action(member.family_id, -1))
        actions.append(self._joining_member_action(joining))
        actions.append(self._member_count_action(joining.family_id, 1, capacity))
        self._transact(
            actions,
            f"move user {joining.user_id} to family {joining.family_id}",
            on_cancel=self._join_cancelled(capacity),
        )

    # Categories

    @staticmethod
    def _category_name_guard(category: Category) -> Dict[str, Any]:
        return CategoryNameItem(
            **category_name_key(category.family_id, category.name),
            category_id=category.category_id,
        ).to_item()

    def _category_actions(self, category: Category) -> List[Dict[str, Any]]:
        """Puts for a new category, its id pointer and its name guard."""
        return [
            self._put_action(category.to_dynamodb_item().to_item()),
            self._pointer_action(
                category_pointer_key(category.category_id), category.family_id
            ),
            self._put_action(self._category_name_guard(category), must_not_exist=True),
        ]

    def get_category(self, category_id: str) -> Optional[Category]:
        """
        Gets a category by id alone, through its pointer record.

        :return: The category if found, None otherwise.
        """
        pointer = self._get(
            category_pointer_key(category_id), f"get category pointer {category_id}"
        )
        if not pointer:
            return None
        item = self._get(
            category_key(pointer["family_id"], category_id), f"get category {category_id}"
        )
        return Category.from_dynamodb_item(item) if item else None

    def list_categories(self, family_id: str) -> List[Category]:
        items = self._query_prefix(
            f"FAMILY#{family_id}", "CATEGORY#", f"list categories of family {family_id}"
        )
        return [Category.from_dynamodb_item(item) for item in items]

    def create_category(self, category: Category) -> None:
        """
        Adds a category and claims its name within the family.

        :raises CategoryNameTaken: If the family already has the name.
        """
        self._transact(
            self._category_actions(category),
            f"create category {category.category_id}",
            on_cancel=lambda reasons: CategoryNameTaken(),
        )

    def update_category(self, category: Category, old_name: str) -> None:
        """
        Stores an updated category, moving its name guard when the name changed.

        :raises CategoryNameTaken: If the new name is already used in the family.
        """
        old_guard = category_name_key(category.family_id, old_name)
        new_guard = category_name_key(category.family_id, category.name)
        if old_guard == new_guard:
            self._put(
                category.to_dynamodb_item().to_item(),
                f"put category {category.category_id}",
            )
            return

        self._transact(
            [
                self._put_action(category.to_dynamodb_item().to_item()),
                self._delete_action(old_guard),
                self._put_action(self._category_name_guard(category), must_not_exist=True),
            ],
            f"rename category {category.category_id}",
            on_cancel=lambda reasons: CategoryNameTaken(),
        )

    def delete_category(self, category: Category) -> None:
        self._transact(
            [
                self._delete_action(category_key(category.family_id, category.category_id)),
                self._delete_action(category_pointer_key(category.category_id)),
                self._delete_action(category_name_key(category.family_id, category.name)),
            ],
            f"delete category {category.category_id}",
        )

    # Wishlist items

    def get_item(self, item_id: str) -> Optional[WishlistItem]:
        """
        Gets a wishlist item by id alone, through its pointer record.

        :return: The item if found, None otherwise.
        """
        pointer = self._get(item_pointer_key(item_id), f"get item pointer {item_id}")
        if not pointer:
            return None
        item = self._get(
            wishlist_item_key(pointer["family_id"], item_id), f"get wishlist item {item_id}"
        )
        return WishlistItem.from_dynamodb_item(item) if item else None

    def create_item(self, item: WishlistItem) -> None:
        """Adds a wishlist item together with its id pointer."""
        self._transact(
            [
                self._put_action(item.to_dynamodb_item().to_item(), must_not_exist=True),
                self._pointer_action(item_pointer_key(item.item_id), item.family_id),
            ],
            f"create wishlist item {item.item_id}",
        )

    def put_item(self, item: WishlistItem) -> None:
        self._put(item.to_dynamodb_item().to_item(), f"put wishlist item {item.item_id}")

    def list_family_items(self, family_id: str) -> List[WishlistItem]:
        items = self._query_prefix(
            f"FAMILY#{family_id}", "ITEM#", f"list items of family {family_id}"
        )
        return [WishlistItem.from_dynamodb_item(item) for item in items]

    def list_owner_items(self, user_id: str) -> List[WishlistItem]:
        """Items owned by a user across all families, newest first."""
        items = self._query_user_index(
            user_id, "ITEM#", f"list items of user {user_id}", newest_first=True
        )
        return [WishlistItem.from_dynamodb_item(item) for item in items]

    def _item_partition_keys(self, item_id: str) -> List[Dict[str, str]]:
        items = self._query_prefix(f"ITEM#{item_id}", None, f"list records of item {item_id}")
        return [{"PK": item["PK"], "SK": item["SK"]} for item in items]

    def delete_item_cascade(self, item: WishlistItem) -> int:
        """
        Deletes a wishlist item with its reservations, price history and id
        pointer.

        :param item: The item to delete.
        :return: Number of records deleted.
        """
        keys = [wishlist_item_key(item.family_id, item.item_id)]
        keys.extend(self._item_partition_keys(item.item_id))
        return self._batch_delete(keys, f"delete wishlist item {item.item_id}")

    # Reservations

    def get_active_reservation(self, item_id: str) -> Optional[Reservation]:
        item = self._get(
            active_reservation_key(item_id), f"get reservation of item {item_id}"
        )
        return Reservation.from_dynamodb_item(item) if item else None

    def get_active_reservations(self, item_ids: Iterable[str]) -> Dict[str, Reservation]:
        """
        Gets the active reservation of several items.

        :return: Mapping of item id to reservation for reserved/purchased items.
        """
        keys = [active_reservation_key(item_id) for item_id in dict.fromkeys(item_ids)]
        reservations = {}
        try:
            # BatchGetItem accepts at most 100 keys per request
            for start in range(0, len(keys), 100):
                request = {self.table.name: {"Keys": keys[start : start + 100]}}
                while request:
                    response = self.client.batch_get_item(RequestItems=request)
                    for item in response["Responses"].get(self.table.name, []):
                        reservation = Reservation.from_dynamodb_item(item)
                        reservations[reservation.item_id] = reservation
                    request = response.get("UnprocessedKeys") or None
        except botocore.exceptions.ClientError as err:
            self._log_client_error("batch get reservations", err)
            raise
        return reservations

    def create_reservation(self, reservation: Reservation) -> None:
        """
        Claims the item's active reservation slot.

        :param reservation: A RESERVED reservation.
        :raises AlreadyReserved: If the item already has an active reservation.
        """
        try:
            self.table.put_item(
                Item=reservation.to_dynamodb_item().to_item(),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise AlreadyReserved() from err
            self._log_client_error(f"reserve item {reservation.item_id}", err)
            raise

    def save_purchase(self, reservation: Reservation) -> None:
        """
        Stores a PURCHASED reservation over the still-RESERVED active slot.

        :raises ReservationRequired: If the slot no longer holds this reservation
            in RESERVED state.
        """
        try:
            self.table.put_item(
                Item=reservation.to_dynamodb_item().to_item(),
                ConditionExpression="reservation_id = :rid AND #status = :reserved",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":rid": reservation.reservation_id,
                    ":reserved": "RESERVED",
                },
            )
        except botocore.exceptions.ClientError as err:
            if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise ReservationRequired() from err
            self._log_client_error(f"purchase item {reservation.item_id}", err)
            raise

    def release_reservation(
        self, reservation: Reservation, history: Optional[Reservation] = None
    ) -> None:
        """
        Frees the item's active slot, optionally keeping a CANCELLED record.

        :param reservation: The RESERVED reservation being cancelled.
        :param history: CANCELLED copy to keep, or None to delete outright.
        :raises ReservationRequired: If the slot no longer holds this reservation.
        """
        condition = {
            "ConditionExpression": "reservation_id = :rid AND #status = :reserved",
            "ExpressionAttributeNames": {"#status": "status"},
            "ExpressionAttributeValues": {
                ":rid": reservation.reservation_id,
                ":reserved": "RESERVED",
            },
        }
        key = active_reservation_key(reservation.item_id)

        if history is None:
            try:
                self.table.delete_item(Key=key, **condition)
            except botocore.exceptions.ClientError as err:
                if err.response["Error"]["Code"] == "ConditionalCheckFailedException":
                    raise ReservationRequired() from err
                self._log_client_error(f"cancel reservation {reservation.reservation_id}", err)
                raise
            return

        self._transact(
            [
                self._delete_action(key, **condition),
                self._put_action(history.to_dynamodb_item().to_item()),
            ],
            f"cancel reservation {reservation.reservation_id}",
            on_cancel=lambda reasons: ReservationRequired(),
        )

    def list_user_reservations(self, user_id: str) -> List[Reservation]:
        """Reservations made by a user, newest first, including kept history."""
        items = self._query_user_index(
            user_id, "RESERVATION#", f"list reservations of user {user_id}", newest_first=True
        )
        return [Reservation.from_dynamodb_item(item) for item in items]

    # Price history

    def put_price_snapshot(self, snapshot: PriceSnapshot) -> None:
        self._put(
            snapshot.to_dynamodb_item().to_item(),
            f"record price of item {snapshot.item_id}",
        )

    def list_price_history(self, item_id: str) -> List[PriceSnapshot]:
        items = self._query_prefix(
            f"ITEM#{item_id}", "PRICE#", f"list price history of item {item_id}"
        )
        return [PriceSnapshot.from_dynamodb_item(item) for item in items]

    # Site administration

    def scan_entities(self) -> Dict[str, list]:
        """
        Reads the whole table once and groups the records site admins report on.

        :return: Lists under "users", "families", "members", "items" and
            "reservations"; guard, pointer and history records are skipped.
        """
        entities = {
            "users": [],
            "families": [],
            "members": [],
            "items": [],
            "reservations": [],
        }
        kwargs = {}
        try:
            while True:
                response = self.table.scan(**kwargs)
                for item in response.get("Items", []):
                    pk, sk = item["PK"], item["SK"]
                    if pk.startswith("USER#") and sk == "PROFILE":
                        entities["users"].append(UserBase.from_dynamodb_item(item))
                    elif pk.startswith("FAMILY#") and sk == "METADATA":
                        entities["families"].append(Family.from_dynamodb_item(item))
                    elif pk.startswith("FAMILY#") and sk.startswith("MEMBER#"):
                        entities["members"].append(FamilyMember.from_dynamodb_item(item))
                    elif pk.startswith("FAMILY#") and sk.startswith("ITEM#"):
                        entities["items"].append(WishlistItem.from_dynamodb_item(item))
                    elif pk.startswith("ITEM#") and sk.startswith("RESERVATION#"):
                        entities["reservations"].append(Reservation.from_dynamodb_item(item))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return entities
                kwargs["ExclusiveStartKey"] = last_key
        except botocore.exceptions.ClientError as err:
            self._log_client_error("scan table", err)
            raise


_table: Optional[WishlistTable] = None


def get_table() -> WishlistTable:
    """Module-level table shared by the Lambda handlers."""
    global _table
    if _table is None:
        _table = WishlistTable()
    return _table


def set_table(table: Optional[WishlistTable]) -> None:
    """Replace the shared table (tests install one bound to a mocked resource)."""
    global _table
    _table = table
