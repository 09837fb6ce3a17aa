from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from .catalog import Catalog, Creature
from .errors import AlreadyUsedReference, UnknownCreature
from .store import OwnedCreature, PendingPurchase, SessionStore

log = logging.getLogger(__name__)

CURRENCY = "ETH"
NETWORK = "Base"


class Verifier(Protocol):
    async def verify(self, reference: str, expected_amount: float, destination: str) -> float:
        ...


class CommerceLedger:
    def __init__(
        self,
        store: SessionStore,
        catalog: Catalog,
        verifier: Verifier,
        *,
        wallet_address: str,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.verifier = verifier
        self.wallet_address = wallet_address

    def list_prices(self) -> Dict[str, float]:
        return self.catalog.prices()

    def _resolve(self, creature_name: str) -> Creature:
        creature = self.catalog.get(creature_name)
        if not creature:
            raise UnknownCreature(creature_name, self.catalog.names())
        return creature

    def create_purchase_request(
        self, principal_id: str, creature_name: str, purchase_ref: Optional[str] = None
    ) -> PendingPurchase:
        """Open a pending purchase at the listed price, payable to the bot wallet."""
        creature = self._resolve(creature_name)
        self.store.upsert_principal(principal_id)
        return self.store.add_pending(
            principal_id,
            creature.name,
            wallet=self.wallet_address,
            amount=creature.price,
            purchase_ref=purchase_ref,
        )

    async def confirm_purchase(
        self, principal_id: str, purchase_ref: str, creature_name: str
    ) -> OwnedCreature:
        """Verify a payment and record the creature as owned.

        The reference check up front is a fast path; the UNIQUE constraint on
        ``owned_creatures.purchase_ref`` is what settles concurrent confirmations.
        """
        reference = purchase_ref.strip().lower()
        if self.store.reference_owner(reference) is not None:
            raise AlreadyUsedReference(reference)
        creature = self._resolve(creature_name)

        self.store.upsert_principal(principal_id)
        pending = self._pending_for(principal_id, creature.name, reference)
        amount_paid = await self.verifier.verify(reference, creature.price, self.wallet_address)

        owned = self.store.add_owned(
            principal_id,
            creature.name,
            reference,
            amount_paid=amount_paid,
            network=NETWORK,
        )
        self.store.confirm_pending(pending.purchase_id)
        self.store.supersede_pending(principal_id, creature.name, pending.purchase_id)
        log.info("purchase confirmed: %s bought %s (tx=%s)", principal_id, creature.name, reference)
        return owned

    def _pending_for(self, principal_id: str, creature_name: str, reference: str) -> PendingPurchase:
        for entry in self.store.list_pending(principal_id):
            if entry.creature_name == creature_name and entry.purchase_ref in (None, reference):
                return entry
        return self.create_purchase_request(principal_id, creature_name, purchase_ref=reference)

    def list_owned(self, principal_id: str) -> List[OwnedCreature]:
        return self.store.list_owned(principal_id)

    def list_pending(self, principal_id: str) -> List[PendingPurchase]:
        return self.store.list_pending(principal_id)

    def owns(self, principal_id: str, creature_name: str) -> Optional[OwnedCreature]:
        wanted = creature_name.strip().lower()
        for owned in self.list_owned(principal_id):
            if owned.creature_name.lower() == wanted:
                return owned
        return None
