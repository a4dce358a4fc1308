"""
Receipt persistence: on-device store, remote store and the router between them.
"""
from spendsmart.storage.local import LocalReceiptStore, load_or_create_install_id  # noqa: F401
from spendsmart.storage.remote import RemoteReceiptStore  # noqa: F401
from spendsmart.storage.router import StorageRouter  # noqa: F401
