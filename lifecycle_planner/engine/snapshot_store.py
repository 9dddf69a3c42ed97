"""
Account Snapshot Store for the Lifecycle Planner.

Keeps point-in-time captures of account attributes so a reversal can fall
back to the last known value of an attribute when a historical plan did not
record the old value. Provides in-memory storage with optional JSON file
persistence.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..models import Account, AccountSnapshot, IdentitySnapshot
from .interfaces import AccountSnapshotSource

logger = logging.getLogger(__name__)


def _identity_name(identity: Union[str, IdentitySnapshot]) -> str:
    return identity.name if isinstance(identity, IdentitySnapshot) else str(identity)


class AccountSnapshotStore(AccountSnapshotSource):
    """
    Stores account snapshots per identity, application and native identity.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        """
        Initialize the snapshot store.

        Args:
            storage_path: Path to store snapshots as JSON.
                         If None, snapshots are kept in memory only.
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self.snapshots: Dict[Tuple[str, str, str], List[AccountSnapshot]] = {}

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        logger.info(
            f"Initialized AccountSnapshotStore with {'persistent' if self.storage_path else 'in-memory'} storage"
        )

    @staticmethod
    def _key(identity: str, application: str, native_identity: str) -> Tuple[str, str, str]:
        return (identity.lower(), application.lower(), native_identity.lower())

    def record(self, snapshot: AccountSnapshot) -> AccountSnapshot:
        """Store one snapshot."""
        key = self._key(snapshot.identity, snapshot.application, snapshot.native_identity)
        self.snapshots.setdefault(key, []).append(snapshot)
        self.snapshots[key].sort(key=lambda s: s.captured_at)
        self._save_state()
        logger.debug(f"Captured {snapshot.application}/{snapshot.native_identity} for {snapshot.identity}")
        return snapshot

    def record_account(
        self,
        identity: Union[str, IdentitySnapshot],
        account: Account,
        captured_at: Optional[datetime] = None,
    ) -> AccountSnapshot:
        """Capture the current attributes of a linked account."""
        return self.record(AccountSnapshot(
            identity=_identity_name(identity),
            application=account.application,
            native_identity=account.native_identity,
            attributes=dict(account.attributes),
            captured_at=captured_at or datetime.now(timezone.utc),
        ))

    def record_identity(self, identity: IdentitySnapshot) -> List[AccountSnapshot]:
        """Capture every account linked to an identity."""
        return [self.record_account(identity, account) for account in identity.accounts]

    def get_snapshots(
        self,
        identity: Union[str, IdentitySnapshot],
        application: str,
        native_identity: str,
    ) -> List[AccountSnapshot]:
        """All snapshots of one account, oldest first."""
        return list(self.snapshots.get(self._key(_identity_name(identity), application, native_identity), []))

    def most_recent_account_snapshot(
        self,
        identity: Union[str, IdentitySnapshot],
        application: str,
        native_identity: str,
    ) -> Optional[Dict[str, Any]]:
        history = self.get_snapshots(identity, application, native_identity)
        if not history:
            return None
        return dict(history[-1].attributes)

    def _save_state(self):
        """Save snapshots to persistent storage."""
        if not self.storage_path:
            return

        try:
            state_data = {
                "snapshots": [
                    snapshot.model_dump(mode="json")
                    for history in self.snapshots.values()
                    for snapshot in history
                ],
                "last_updated": datetime.now(timezone.utc).isoformat(),
            }
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(state_data, f, indent=2, default=str)

        except Exception as e:
            logger.error(f"Failed to save snapshots to {self.storage_path}: {e}")

    def _load_state(self):
        """Load snapshots from persistent storage."""
        if not self.storage_path or not self.storage_path.exists():
            return

        try:
            with open(self.storage_path, encoding="utf-8") as f:
                state_data = json.load(f)

            for snapshot_data in state_data.get("snapshots", []):
                snapshot = AccountSnapshot.model_validate(snapshot_data)
                key = self._key(snapshot.identity, snapshot.application, snapshot.native_identity)
                self.snapshots.setdefault(key, []).append(snapshot)

            for history in self.snapshots.values():
                history.sort(key=lambda s: s.captured_at)

            logger.info(f"Loaded snapshots for {len(self.snapshots)} accounts from {self.storage_path}")

        except Exception as e:
            logger.error(f"Failed to load snapshots from {self.storage_path}: {e}")
            # Continue with empty state if load fails
