"""Module gating with anomaly-triggered global lock.

States:
    Normal          no module disabled
    ModuleDisabled  some modules disabled via disable_module
    GloballyLocked  every module disabled; reached by activate_global_lock or
                    by the anomaly threshold, left only through release_lock
"""

import asyncio
from collections.abc import AsyncIterator, Iterable

import structlog

from waveup.constants import ALL_MODULES
from waveup.errors import StoreUnavailableError
from waveup.models.entitlements import AnomalyRecord, AppModule, ModuleFlagState
from waveup.services.clock import NowProvider, utcnow
from waveup.services.record_store import RecordStore

logger = structlog.get_logger(__name__)

GLOBAL_LOCK_ANOMALY_TYPE = "GLOBAL_LOCK_ACTIVATED"


def parse_module(module: AppModule | str) -> AppModule | None:
    if isinstance(module, AppModule):
        return module
    try:
        return AppModule(str(module).strip().upper())
    except ValueError:
        return None


class FeatureFlagGate:
    def __init__(
        self,
        records: RecordStore,
        key: str = "security_state",
        anomaly_threshold: int = 3,
        maintenance_mode: bool = False,
        provisioned_disabled: Iterable[AppModule | str] = (),
        poll_interval_seconds: float = 5.0,
        now_provider: NowProvider = utcnow,
    ) -> None:
        self.records = records
        self.key = key
        self.anomaly_threshold = anomaly_threshold
        self.maintenance_mode = maintenance_mode
        self.poll_interval_seconds = poll_interval_seconds
        self.now_provider = now_provider
        self.provisioned_disabled: set[AppModule] = set()
        for raw in provisioned_disabled:
            module = parse_module(raw)
            if module is None:
                logger.warning("feature_flag_unknown_module", module=str(raw))
                continue
            self.provisioned_disabled.add(module)

        self._anomaly_count = 0
        self._anomaly_lock = asyncio.Lock()

    @property
    def anomaly_count(self) -> int:
        return self._anomaly_count

    async def get_state(self) -> ModuleFlagState:
        return await self.records.load(self.key, ModuleFlagState, ModuleFlagState())

    async def is_module_enabled(self, module: AppModule | str) -> bool:
        parsed = parse_module(module)
        if parsed is None or self.maintenance_mode:
            return False
        state = await self.get_state()
        if state.global_lock_active:
            return False
        return parsed not in state.disabled_modules and parsed not in self.provisioned_disabled

    async def enabled_modules(self) -> list[AppModule]:
        if self.maintenance_mode:
            return []
        state = await self.get_state()
        if state.global_lock_active:
            return []
        blocked = state.disabled_modules | self.provisioned_disabled
        return [module for module in ALL_MODULES if module not in blocked]

    async def _set_module(self, module: AppModule | str, disabled: bool) -> ModuleFlagState:
        parsed = parse_module(module)
        if parsed is None:
            raise ValueError(f"Unknown module '{module}'")

        def mutate(state: ModuleFlagState) -> ModuleFlagState:
            modules = set(state.disabled_modules)
            if disabled:
                modules.add(parsed)
            else:
                modules.discard(parsed)
            return state.model_copy(update={"disabled_modules": modules})

        state = await self.records.update(self.key, ModuleFlagState, ModuleFlagState, mutate)
        logger.info("module_flag_changed", module=parsed.value, disabled=disabled)
        return state

    async def disable_module(self, module: AppModule | str) -> ModuleFlagState:
        return await self._set_module(module, disabled=True)

    async def enable_module(self, module: AppModule | str) -> ModuleFlagState:
        """Re-enable a single module. Has no effect on an active global lock."""
        return await self._set_module(module, disabled=False)

    async def activate_global_lock(
        self, triggered_by: Iterable[str], details: str = ""
    ) -> ModuleFlagState:
        triggers = [str(t) for t in triggered_by]
        trigger_modules = {m for m in (parse_module(t) for t in triggers) if m is not None}
        summary = f"Triggered by: {', '.join(triggers)}"
        if details:
            summary = f"{summary} ({details})"

        def mutate(state: ModuleFlagState) -> ModuleFlagState:
            return ModuleFlagState(
                global_lock_active=True,
                disabled_modules=state.disabled_modules | trigger_modules,
                last_anomaly=AnomalyRecord(
                    type=GLOBAL_LOCK_ANOMALY_TYPE,
                    timestamp=self.now_provider(),
                    details=summary,
                ),
            )

        state = await self.records.update(self.key, ModuleFlagState, ModuleFlagState, mutate)
        logger.warning("global_lock_activated", triggered_by=triggers, details=details)
        return state

    async def report_anomaly(self, anomaly_type: str, details: str = "") -> ModuleFlagState:
        """Count an anomaly; the threshold-th one activates the global lock.

        Reports arriving while the lock is active are ignored. A lock that
        cannot be persisted is logged and the current state returned.
        """
        async with self._anomaly_lock:
            state = await self.get_state()
            if state.global_lock_active:
                logger.info("anomaly_ignored_while_locked", anomaly_type=anomaly_type)
                return state

            self._anomaly_count += 1
            logger.warning(
                "anomaly_reported",
                anomaly_type=anomaly_type,
                details=details,
                count=self._anomaly_count,
                threshold=self.anomaly_threshold,
            )
            if self._anomaly_count < self.anomaly_threshold:
                return state

            try:
                return await self.activate_global_lock([anomaly_type], details)
            except StoreUnavailableError as exc:
                logger.error("global_lock_persist_failed", anomaly_type=anomaly_type, error=exc.message)
                return state

    async def release_lock(self) -> None:
        """Clear all lock and module state and reset the anomaly counter."""
        async with self._anomaly_lock:
            await self.records.delete(self.key)
            self._anomaly_count = 0
        logger.info("global_lock_released")

    async def watch(self, interval_seconds: float | None = None) -> AsyncIterator[list[AppModule]]:
        """Poll the enabled module set, yielding it on start and on every change."""
        interval = self.poll_interval_seconds if interval_seconds is None else interval_seconds
        previous: list[AppModule] | None = None
        while True:
            enabled = await self.enabled_modules()
            if enabled != previous:
                previous = enabled
                yield enabled
            await asyncio.sleep(interval)
