"""
Pluggable record store factory.

Creates the record store and local configuration store based on
configuration. The local backend uses SQLite. External backends register
via the ``copydeck.backends`` entry point group.

External backend packages provide a factory function::

    def create_record_store(config: StoreConfig) -> RecordStoreProtocol:
        ...

and register it in their pyproject.toml::

    [project.entry-points."copydeck.backends"]
    my-backend = "my_package.backend:create_record_store"
"""

from typing import NamedTuple

from .config import StoreConfig
from .protocol import LocalStoreProtocol, RecordStoreProtocol


class StoreBundle(NamedTuple):
    """Storage collaborators returned by the factory."""
    records: RecordStoreProtocol
    local: LocalStoreProtocol
    is_local: bool  # True when records live in the store directory


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Create storage backends from configuration.

    The local configuration store is always SQLite in the store directory,
    the equivalent of browser localStorage. The record store follows
    ``config.backend``.
    """
    from .local_state import LocalStore

    local = LocalStore(config.path / "local.db")
    records = create_record_store(config)
    return StoreBundle(records=records, local=local, is_local=config.backend == "local")


def create_record_store(config: StoreConfig) -> RecordStoreProtocol:
    """
    Create the record store.

    For ``backend = "local"`` (default), a SQLite RecordStore.
    For ``backend = "remote"``, a RemoteRecordStore using the [remote] section.
    For other values, loads the backend via the ``copydeck.backends`` entry
    point group.
    """
    if config.backend == "local":
        from .record_store import RecordStore
        return RecordStore(config.path / "records.db")
    if config.backend == "remote":
        if config.remote is None:
            raise ValueError(
                "Remote backend selected but no [remote] api_url/api_key configured "
                "(or set COPYDECK_API_URL and COPYDECK_API_KEY)."
            )
        from .remote_store import RemoteRecordStore
        return RemoteRecordStore(config.remote.api_url, config.remote.api_key)
    return _load_backend(config.backend, config)


def _load_backend(name: str, config: StoreConfig) -> RecordStoreProtocol:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="copydeck.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. No backends registered."
    )
