"""
Entitlement context wiring.

One EntitlementContext is built at app start and handed to every screen
that needs gating. Tests build their own against an in-memory store.

    context = await create_context()
    decision = await context.entitlements.consume_one()
"""

from dataclasses import dataclass

import structlog

from waveup.config import Settings, get_settings
from waveup.logging_config import setup_logging
from waveup.services.clock import NowProvider, utcnow
from waveup.services.entitlement_service import EntitlementService
from waveup.services.entitlement_store import EntitlementStore
from waveup.services.feature_gate import FeatureFlagGate
from waveup.services.kv_store import KeyValueStore, create_store
from waveup.services.promo_service import PromoService
from waveup.services.record_store import RecordStore
from waveup.services.usage_counter import UsageCounter

logger = structlog.get_logger(__name__)


@dataclass
class EntitlementContext:
    settings: Settings
    records: RecordStore
    entitlements: EntitlementService

    @property
    def gate(self) -> FeatureFlagGate:
        return self.entitlements.gate

    @property
    def promos(self) -> PromoService:
        return self.entitlements.promos

    @property
    def usage(self) -> UsageCounter:
        return self.entitlements.usage


def build_context(
    store: KeyValueStore,
    settings: Settings | None = None,
    now_provider: NowProvider = utcnow,
) -> EntitlementContext:
    """Wire every entitlement service around a single store and clock."""
    settings = settings or get_settings()
    cfg = settings.entitlements
    records = RecordStore(store, timeout_seconds=cfg.store_timeout_seconds)

    service = EntitlementService(
        entitlements=EntitlementStore(records, key=cfg.premium_status_key, now_provider=now_provider),
        usage=UsageCounter(records, key=cfg.ideas_used_key, now_provider=now_provider),
        gate=FeatureFlagGate(
            records,
            key=cfg.security_state_key,
            anomaly_threshold=cfg.anomaly_threshold,
            maintenance_mode=settings.feature_flags.maintenance_mode,
            provisioned_disabled=settings.feature_flags.disabled_modules,
            poll_interval_seconds=cfg.module_poll_interval_seconds,
            now_provider=now_provider,
        ),
        promos=PromoService(records, uses_prefix=cfg.promo_uses_prefix, now_provider=now_provider),
        config=cfg,
        now_provider=now_provider,
    )
    return EntitlementContext(settings=settings, records=records, entitlements=service)


async def create_context(settings: Settings | None = None) -> EntitlementContext:
    """Configure logging and build the context against the configured store backend."""
    settings = settings or get_settings()
    setup_logging(settings.debug)
    store = await create_store(settings)
    logger.info(
        "entitlement_context_ready",
        store_backend=settings.store.backend,
        maintenance_mode=settings.feature_flags.maintenance_mode,
    )
    return build_context(store, settings)
