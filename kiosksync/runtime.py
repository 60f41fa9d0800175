"""Long-lived sync wiring shared by the CLI loop and slash commands."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .configuration import ConfigurationBundle
from .store import SqliteRecordStore
from .sync import LocalDataDir, RemoteStoreClient, SingleFlight, SyncClient, SyncSettings

logger = logging.getLogger("kiosksync.runtime")


class SyncRuntime:
    """Owns the query store and the sync client built from the current config.

    The single-flight guard and the local data directory outlive any one
    client, so a run left over from before a reconfigure still excludes
    runs started by the replacement client.
    """

    def __init__(
        self,
        config: ConfigurationBundle,
        store: Optional[SqliteRecordStore] = None,
        remote_factory: Callable[[], RemoteStoreClient] = RemoteStoreClient,
    ):
        self.config = config
        self.store = store or SqliteRecordStore(config.database_path)
        self.remote_factory = remote_factory
        self.guard = SingleFlight()
        self.local = LocalDataDir(config.data_dir)
        self.client = self._build_client(config)

    def _build_client(self, config: ConfigurationBundle) -> SyncClient:
        if self.local.root != config.data_dir:
            self.local = LocalDataDir(config.data_dir)
        settings = SyncSettings.from_config(config.merged)
        return SyncClient(
            config.data_dir,
            settings,
            store=self.store,
            remote=self.remote_factory(),
            local=self.local,
            guard=self.guard,
        )

    def start(self) -> bool:
        self.store.initialize()
        init = self.client.initialize()
        if not init["success"]:
            logger.info("Sync not started: %s", init["error"])
        return self.client.scheduler.start()

    def reconfigure(self, config: ConfigurationBundle) -> None:
        """Swap in a client for new settings; the old timer stops without a final push."""
        # A run still in flight finishes on its own; the shared guard drops
        # anything the new scheduler triggers until it does.
        self.client.scheduler.stop(timeout=0)
        self.config = config
        self.client = self._build_client(config)
        self.client.initialize()
        self.client.scheduler.start()
        logger.info("Sync settings reloaded")

    def shutdown(self) -> None:
        result = self.client.scheduler.shutdown()
        if result is not None:
            logger.info("Shutdown push: %s", result.message)
        self.store.close()


__all__ = ["SyncRuntime"]
