"""Reconcile local accounts with their billing provider customer."""

from __future__ import annotations

from loguru import logger

from voltledger_billing.models.user import ProviderLink, User
from voltledger_billing.services.billing.exceptions import BillingAction
from voltledger_billing.services.billing.providers.base import BillingProvider
from voltledger_billing.services.billing.store import LedgerStore


class AccountSynchronizer:
    """Owns the create / update / repair decision for one account at a time.

    ``synchronize`` never raises: failures are logged and reported as ``None`` so
    callers iterating over many accounts can continue with the next one.
    """

    def __init__(self, provider: BillingProvider, store: LedgerStore) -> None:
        self._provider = provider
        self._store = store

    async def synchronize_user(self, user: User) -> ProviderLink | None:
        return await self.synchronize(user)

    async def force_synchronize_user(self, user: User) -> ProviderLink | None:
        return await self.synchronize(user, force_repair=True)

    async def synchronize(self, user: User, *, force_repair: bool = False) -> ProviderLink | None:
        action = (
            BillingAction.FORCE_SYNCHRONIZE_USER if force_repair else BillingAction.SYNCHRONIZE_USER
        )
        previous_customer_id = user.billing_customer_id
        try:
            if force_repair:
                link = await self._repairing_synchronize(user)
            else:
                link = await self._regular_synchronize(user)
            await self._store.save_account_link(user.id, link)
        except Exception:
            logger.exception(
                "Failed to synchronize user",
                action=action.value,
                user_id=str(user.id),
                email=user.email,
                forced=force_repair,
            )
            return None

        user.billing_customer_id = link.customer_id
        user.billing_live_mode = link.live_mode
        if force_repair and previous_customer_id != link.customer_id:
            logger.warning(
                "Customer id has been repaired",
                action=action.value,
                user_id=str(user.id),
                previous_customer_id=previous_customer_id,
                customer_id=link.customer_id,
            )
        logger.info(
            "Successfully synchronized user",
            action=action.value,
            user_id=str(user.id),
            email=user.email,
            customer_id=link.customer_id,
            live_mode=link.live_mode,
            forced=force_repair,
        )
        return link

    async def _regular_synchronize(self, user: User) -> ProviderLink:
        if await self._provider.is_linked(user):
            return await self._provider.update_customer(user)
        return await self._provider.create_customer(user)

    async def _repairing_synchronize(self, user: User) -> ProviderLink:
        # The stored customer id may point to nothing on the provider side
        try:
            existing = await self._provider.get_customer(user)
        except Exception as exc:
            logger.warning(
                "Provider customer lookup failed, repairing link",
                action=BillingAction.FORCE_SYNCHRONIZE_USER.value,
                user_id=str(user.id),
                customer_id=user.billing_customer_id,
                error=str(exc),
            )
            return await self._provider.repair_customer(user)
        if not existing:
            return await self._provider.create_customer(user)
        return await self._provider.update_customer(user)
