"""
Business catalogs for WaveUp entitlements.

These values ship with the app and do not need env-var overrides. For
operational parameters that vary per environment (quotas, timeouts, store
backend), see config.py.
"""

from datetime import date
from decimal import Decimal

from waveup.models.entitlements import (
    AppModule,
    BillingPeriod,
    PlanId,
    PromoCode,
    SubscriptionPlan,
    Tier,
)

# --- Display labels per tier ---
TIER_LABELS: dict[Tier, str] = {
    Tier.FREE: "gratuit",
    Tier.MONTHLY: "mensuel",
    Tier.ANNUAL: "annuel",
    Tier.PRO: "pro",
}

# --- Modules reported by the feature gate, in display order ---
ALL_MODULES: tuple[AppModule, ...] = (
    AppModule.AI,
    AppModule.LEADERBOARD,
    AppModule.ANALYTICS,
    AppModule.IDEAS,
    AppModule.TRENDS,
)

# --- Subscription catalog ---
SUBSCRIPTION_PLANS: tuple[SubscriptionPlan, ...] = (
    SubscriptionPlan(
        id=PlanId.MONTHLY,
        name="WaveUp+ Mensuel",
        period=BillingPeriod.MONTHLY,
        price=Decimal("4.99"),
        features=[
            "5 idées IA par jour",
            "Hashtags tendances en temps réel",
            "Suggestions optimisées",
            "Synchronisation 24/7",
            "Support standard",
        ],
        description="Accès complet pendant 1 mois",
    ),
    SubscriptionPlan(
        id=PlanId.ANNUAL,
        name="WaveUp+ Annuel",
        period=BillingPeriod.ANNUAL,
        price=Decimal("49.99"),
        original_price=Decimal("59.88"),
        features=[
            "10 idées IA par jour",
            "Hashtags tendances en temps réel",
            "Suggestions avancées",
            "Synchronisation 24/7",
            "Support prioritaire",
            "Accès bêta aux nouvelles fonctionnalités",
        ],
        description="1 an d'accès complet + 1 mois offert",
        badge="1 MOIS OFFERT",
    ),
    SubscriptionPlan(
        id=PlanId.PRO,
        name="WaveUp Pro",
        # Pro renews monthly
        period=BillingPeriod.MONTHLY,
        price=Decimal("20.00"),
        features=[
            "Idées IA illimitées par jour",
            "Hashtags tendances en temps réel",
            "Analytics complètes de vos vidéos",
            "Export de planning & publication directe",
            "Accès anticipé aux nouvelles features",
            "Support VIP 24/7",
            "Suggestions de formats innovants",
            "Optimisation automatique des hashtags",
        ],
        description="Pour les créateurs professionnels",
        badge="POUR MICRO-CRÉATEURS",
        secondary_badge="POUR INFLUENCEURS",
    ),
)

PLANS_BY_ID: dict[PlanId, SubscriptionPlan] = {plan.id: plan for plan in SUBSCRIPTION_PLANS}

# --- Promo code allow-list ---
PROMO_CODES: tuple[PromoCode, ...] = (
    PromoCode(
        code="NOEL50",
        discount_percent=50,
        max_uses=100,
        expiry_date=date(2025, 12, 31),
    ),
    PromoCode(
        code="WAVEUP20",
        discount_percent=20,
        max_uses=999,
        expiry_date=date(2025, 12, 31),
    ),
    PromoCode(
        code="NEWCREATOR30",
        discount_percent=30,
        max_uses=500,
        expiry_date=date(2025, 12, 31),
    ),
)
