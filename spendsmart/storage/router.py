"""
Storage router.

Guest sessions persist on-device, authenticated sessions persist to the
remote store.  The session is passed in on every call; the router never
looks it up.  There is no fallback between backends for receipt data and
no migration between them.
"""
from __future__ import annotations

import logging
from typing import Optional

from spendsmart.schemas import Receipt, SessionMode, StorageSession
from spendsmart.storage.local import LocalReceiptStore
from spendsmart.storage.remote import RemoteReceiptStore

logger = logging.getLogger(__name__)


class StorageRouter:
    def __init__(self, local: LocalReceiptStore, remote: RemoteReceiptStore) -> None:
        self._local = local
        self._remote = remote

    def _backend(self, session: StorageSession):
        return self._local if session.mode == SessionMode.GUEST else self._remote

    def persist(self, receipt: Receipt, session: StorageSession) -> Receipt:
        if receipt.user_id != session.owner_id:
            raise ValueError(
                f"receipt owner {receipt.user_id} does not match session owner {session.owner_id}"
            )
        logger.info("Persisting receipt %s (%s)", receipt.id, session.mode.value)
        if session.mode == SessionMode.GUEST:
            return self._local.append(receipt)
        return self._remote.insert(receipt)

    def list_receipts(self, session: StorageSession) -> list[Receipt]:
        return self._backend(session).list_for_owner(session.owner_id)

    def get_receipt(self, receipt_id: str, session: StorageSession) -> Optional[Receipt]:
        return self._backend(session).get(session.owner_id, receipt_id)

    def delete_receipt(self, receipt_id: str, session: StorageSession) -> bool:
        return self._backend(session).delete(session.owner_id, receipt_id)
