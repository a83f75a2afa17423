"""
Entity Store: institutions and accounts

CRUD over the `institutions` and `accounts` collections, always scoped to
the requesting user. Deleting an institution deletes its accounts in the
same transaction.

Balances are set once at account creation and afterwards only move
through LedgerOperations and SpendingService.
"""

from typing import Callable, Optional, Union

from fintrack.ledger.base import LedgerService, check_owner, to_amount
from fintrack.ledger.errors import AccountNotFoundError, InstitutionNotFoundError
from fintrack.models.audit import AuditEventType
from fintrack.models.catalog import InstitutionKind
from fintrack.models.entities import Account, Institution
from fintrack.services.storage import (
    Collections,
    DocumentQuery,
    DocumentSnapshot,
    StoreTransaction,
    Subscription,
)


def _institutions(snapshots: list[DocumentSnapshot]) -> list[Institution]:
    items = [Institution.from_document(s.id, s.data) for s in snapshots]
    return sorted(items, key=lambda i: i.name.lower())


def _accounts(snapshots: list[DocumentSnapshot]) -> list[Account]:
    items = [Account.from_document(s.id, s.data) for s in snapshots]
    return sorted(items, key=lambda a: (a.institution_id, a.name.lower()))


class EntityStore(LedgerService):
    """Institutions and accounts owned by a user."""

    # ------------------------------------------------------------------
    # Institutions
    # ------------------------------------------------------------------

    def _institutions_query(self, user_id: str) -> DocumentQuery:
        return DocumentQuery(collection=Collections.INSTITUTIONS).where("userId", "==", user_id)

    async def create_institution(
        self,
        user_id: str,
        name: str,
        kind: Union[InstitutionKind, str],
    ) -> str:
        institution = Institution(user_id=user_id, name=name, kind=kind, created_at=self.now())
        institution_id = await self._store.add(Collections.INSTITUTIONS, institution.to_document())
        await self._audit.log_entity_change(
            AuditEventType.INSTITUTION_CREATED,
            user_id,
            "institution",
            institution_id,
            f"Institution created: {institution.name}",
            {"kind": institution.kind.value},
        )
        return institution_id

    async def get_institution(self, user_id: str, institution_id: str) -> Institution:
        data = await self._get_owned(
            Collections.INSTITUTIONS, institution_id, user_id, InstitutionNotFoundError
        )
        return Institution.from_document(institution_id, data)

    async def update_institution(
        self,
        user_id: str,
        institution_id: str,
        name: Optional[str] = None,
        kind: Optional[Union[InstitutionKind, str]] = None,
    ) -> Institution:
        """Rename an institution and/or change its kind."""
        current = await self.get_institution(user_id, institution_id)
        changes = {}
        if name is not None:
            changes["name"] = name
        if kind is not None:
            changes["kind"] = kind
        updated = Institution.model_validate({**current.model_dump(), **changes})
        await self._store.update(
            Collections.INSTITUTIONS,
            institution_id,
            {"name": updated.name, "kind": updated.kind.value},
        )
        await self._audit.log_entity_change(
            AuditEventType.INSTITUTION_UPDATED,
            user_id,
            "institution",
            institution_id,
            f"Institution updated: {updated.name}",
        )
        return updated

    async def delete_institution(self, user_id: str, institution_id: str) -> int:
        """
        Delete an institution and every account under it.

        Returns:
            Number of accounts deleted
        """
        accounts = await self._store.query(
            DocumentQuery(collection=Collections.ACCOUNTS)
            .where("userId", "==", user_id)
            .where("institutionId", "==", institution_id)
        )
        account_ids = [a.id for a in accounts]

        def _delete(txn: StoreTransaction) -> int:
            check_owner(
                txn.get(Collections.INSTITUTIONS, institution_id),
                user_id,
                institution_id,
                InstitutionNotFoundError,
            )
            for account_id in account_ids:
                txn.delete(Collections.ACCOUNTS, account_id)
            txn.delete(Collections.INSTITUTIONS, institution_id)
            return len(account_ids)

        deleted = await self._transact("delete_institution", user_id, _delete, institution_id)
        await self._audit.log_entity_change(
            AuditEventType.INSTITUTION_DELETED,
            user_id,
            "institution",
            institution_id,
            f"Institution deleted with {deleted} accounts",
            {"account_ids": account_ids},
        )
        return deleted

    async def list_institutions(self, user_id: str) -> list[Institution]:
        return _institutions(await self._store.query(self._institutions_query(user_id)))

    def subscribe_institutions(
        self,
        user_id: str,
        on_next: Callable[[list[Institution]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        return self._store.subscribe(
            self._institutions_query(user_id),
            lambda snapshots: on_next(_institutions(snapshots)),
            on_error,
        )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _accounts_query(self, user_id: str) -> DocumentQuery:
        return DocumentQuery(collection=Collections.ACCOUNTS).where("userId", "==", user_id)

    async def create_account(
        self,
        user_id: str,
        institution_id: str,
        name: str,
        currency: str,
        opening_balance: object = 0,
    ) -> str:
        """Create an account under one of the user's institutions."""
        await self.get_institution(user_id, institution_id)
        account = Account(
            user_id=user_id,
            institution_id=institution_id,
            name=name,
            currency=currency,
            balance=to_amount(opening_balance, "opening balance", allow_zero=True),
            created_at=self.now(),
        )
        account_id = await self._store.add(Collections.ACCOUNTS, account.to_document())
        await self._audit.log_entity_change(
            AuditEventType.ACCOUNT_CREATED,
            user_id,
            "account",
            account_id,
            f"Account created: {account.name} ({account.currency})",
            {"institution_id": institution_id, "opening_balance": account.balance},
        )
        return account_id

    async def get_account(self, user_id: str, account_id: str) -> Account:
        data = await self._get_owned(Collections.ACCOUNTS, account_id, user_id, AccountNotFoundError)
        return Account.from_document(account_id, data)

    async def rename_account(self, user_id: str, account_id: str, name: str) -> Account:
        current = await self.get_account(user_id, account_id)
        updated = Account.model_validate({**current.model_dump(), "name": name})
        await self._store.update(Collections.ACCOUNTS, account_id, {"name": updated.name})
        await self._audit.log_entity_change(
            AuditEventType.ACCOUNT_UPDATED,
            user_id,
            "account",
            account_id,
            f"Account renamed: {updated.name}",
        )
        return updated

    async def delete_account(self, user_id: str, account_id: str) -> None:
        await self.get_account(user_id, account_id)
        await self._store.delete(Collections.ACCOUNTS, account_id)
        await self._audit.log_entity_change(
            AuditEventType.ACCOUNT_DELETED,
            user_id,
            "account",
            account_id,
            "Account deleted",
        )

    async def list_accounts(
        self,
        user_id: str,
        institution_id: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> list[Account]:
        query = self._accounts_query(user_id)
        if institution_id:
            query = query.where("institutionId", "==", institution_id)
        if currency:
            query = query.where("currency", "==", currency.strip().upper())
        return _accounts(await self._store.query(query))

    def subscribe_accounts(
        self,
        user_id: str,
        on_next: Callable[[list[Account]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        return self._store.subscribe(
            self._accounts_query(user_id),
            lambda snapshots: on_next(_accounts(snapshots)),
            on_error,
        )
