from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from localmcp_resilience.utils.logger import get_logger

from ..callables import invoke
from ..errors import BackupError
from ..events import BackupCompleted, BackupFailed, EventBus
from ..monitoring.metrics import resilience_metrics

logger = get_logger(__name__)

BackupProvider = Callable[[], Union[Any, Awaitable[Any]]]


class BackupOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class BackupRecord:
    id: str
    timestamp: datetime
    source_config_id: str
    outcome: BackupOutcome
    result: Any = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is BackupOutcome.SUCCEEDED


class BackupScheduler:
    """
    Runs registered backup providers and reports each run.

    Provider failures are wrapped in `BackupError`, published as
    `BackupFailed` and logged; they never propagate out of `run_cycle`.
    """

    def __init__(
        self,
        events: Optional[EventBus] = None,
        *,
        provider_timeout: Optional[float] = None,
    ) -> None:
        self.provider_timeout = provider_timeout
        self._events = events
        self._providers: Dict[str, BackupProvider] = {}
        self._cycle_lock = asyncio.Lock()

    def register(self, config_id: str, provider: BackupProvider) -> None:
        self._providers[config_id] = provider

    def unregister(self, config_id: str) -> bool:
        return self._providers.pop(config_id, None) is not None

    @property
    def config_ids(self) -> List[str]:
        return list(self._providers)

    async def run_cycle(self) -> List[BackupRecord]:
        """Run every provider once, in registration order."""
        async with self._cycle_lock:
            records = []
            for config_id, provider in list(self._providers.items()):
                records.append(await self._run_one(config_id, provider))
            return records

    async def _run_one(self, config_id: str, provider: BackupProvider) -> BackupRecord:
        backup_id = uuid.uuid4().hex
        try:
            if self.provider_timeout is None:
                result = await invoke(provider)
            else:
                result = await asyncio.wait_for(
                    invoke(provider), timeout=self.provider_timeout
                )
        except Exception as exc:  # noqa: BLE001 - backups never halt the coordinator
            reason = (
                f"timed out after {self.provider_timeout}s"
                if isinstance(exc, asyncio.TimeoutError)
                else f"{type(exc).__name__}: {exc}"
            )
            error = BackupError(config_id, reason)
            error.__cause__ = exc
            logger.error(
                "backup_failed",
                backup_id=backup_id,
                source_config_id=config_id,
                error=reason,
            )
            resilience_metrics.inc_backup(config_id, BackupOutcome.FAILED.value)
            if self._events is not None:
                self._events.emit(BackupFailed(source_config_id=config_id, error=error))
            return BackupRecord(
                id=backup_id,
                timestamp=datetime.now(timezone.utc),
                source_config_id=config_id,
                outcome=BackupOutcome.FAILED,
                error=reason,
            )

        logger.info("backup_completed", backup_id=backup_id, source_config_id=config_id)
        resilience_metrics.inc_backup(config_id, BackupOutcome.SUCCEEDED.value)
        if self._events is not None:
            self._events.emit(
                BackupCompleted(backup_id=backup_id, source_config_id=config_id)
            )
        return BackupRecord(
            id=backup_id,
            timestamp=datetime.now(timezone.utc),
            source_config_id=config_id,
            outcome=BackupOutcome.SUCCEEDED,
            result=result,
        )
