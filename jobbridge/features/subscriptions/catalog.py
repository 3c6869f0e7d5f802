"""
jobbridge/features/subscriptions/catalog.py

Tier catalog and entitlement evaluation.

Handles:
- Static tier -> limits table (free, pro, enterprise)
- Feature descriptions for upgrade prompts
- Pure entitlement checks (feature flags, monthly application limit)

Everything here is pure and safe to share across requests.
"""

from types import MappingProxyType
from typing import Mapping, Union

from pydantic.alias_generators import to_camel

from jobbridge.models.subscription import (
    Feature,
    FeatureDescription,
    SubscriptionTier,
    TierLimits,
)


UNLIMITED = -1

TIER_LIMITS: Mapping[SubscriptionTier, TierLimits] = MappingProxyType({
    SubscriptionTier.FREE: TierLimits(
        monthly_applications=5,
    ),
    SubscriptionTier.PRO: TierLimits(
        monthly_applications=UNLIMITED,
        ai_resume_builder=True,
        ai_resume_parsing=True,
        ai_interview_prep=True,
        ai_job_recommendations=True,
        ai_cover_letter=True,
        ai_skills_gap=True,
        ai_chat_assistant=True,
        ai_application_tips=True,
        bulk_apply=True,
        priority_support=True,
    ),
    SubscriptionTier.ENTERPRISE: TierLimits(
        monthly_applications=UNLIMITED,
        ai_resume_builder=True,
        ai_resume_parsing=True,
        ai_interview_prep=True,
        ai_job_recommendations=True,
        ai_cover_letter=True,
        ai_skills_gap=True,
        ai_chat_assistant=True,
        ai_application_tips=True,
        bulk_apply=True,
        priority_support=True,
        analytics_access=True,
        api_access=True,
        team_features=True,
    ),
})

FEATURE_DESCRIPTIONS: Mapping[Feature, FeatureDescription] = MappingProxyType({
    Feature.MONTHLY_APPLICATIONS: FeatureDescription(
        name="Unlimited Applications",
        description="Apply to as many jobs as you want without monthly limits",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_RESUME_BUILDER: FeatureDescription(
        name="AI Resume Builder",
        description="Create professional, ATS-optimized resumes with AI assistance",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_RESUME_PARSING: FeatureDescription(
        name="AI Resume Parsing",
        description="Automatically extract and organize information from your existing resume",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_INTERVIEW_PREP: FeatureDescription(
        name="AI Interview Prep",
        description="Practice interviews with AI-generated questions and feedback",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_JOB_RECOMMENDATIONS: FeatureDescription(
        name="AI Job Recommendations",
        description="Get personalized job suggestions based on your skills and experience",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_COVER_LETTER: FeatureDescription(
        name="AI Cover Letter Generator",
        description="Generate tailored cover letters for each job application",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_SKILLS_GAP: FeatureDescription(
        name="Skills Gap Analysis",
        description="Identify missing skills and get learning recommendations",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_CHAT_ASSISTANT: FeatureDescription(
        name="AI Career Assistant",
        description="Get personalized career guidance from our AI assistant",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.AI_APPLICATION_TIPS: FeatureDescription(
        name="AI Application Tips",
        description="Receive customized tips for each job application",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.BULK_APPLY: FeatureDescription(
        name="Bulk Apply",
        description="Apply to multiple jobs at once with a single click",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.PRIORITY_SUPPORT: FeatureDescription(
        name="Priority Support",
        description="Get faster response times from our support team",
        required_tier=SubscriptionTier.PRO,
    ),
    Feature.ANALYTICS_ACCESS: FeatureDescription(
        name="Advanced Analytics",
        description="Access detailed analytics about your job search progress",
        required_tier=SubscriptionTier.ENTERPRISE,
    ),
    Feature.API_ACCESS: FeatureDescription(
        name="API Access",
        description="Integrate with external tools using our API",
        required_tier=SubscriptionTier.ENTERPRISE,
    ),
    Feature.TEAM_FEATURES: FeatureDescription(
        name="Team Collaboration",
        description="Collaborate with your team on job search activities",
        required_tier=SubscriptionTier.ENTERPRISE,
    ),
})

# Feature key -> TierLimits attribute
_FIELD_BY_FEATURE = {Feature(to_camel(name)): name for name in TierLimits.model_fields}

# Numeric features count as "accessible" when their limit is non-zero.
# Only fields listed here get that treatment.
NUMERIC_FEATURES = frozenset({Feature.MONTHLY_APPLICATIONS})

TierLike = Union[SubscriptionTier, str, None]


def resolve_tier(tier: TierLike) -> SubscriptionTier:
    """Map a stored tier value to a SubscriptionTier; unknown or empty -> free."""
    if isinstance(tier, SubscriptionTier):
        return tier
    if not tier:
        return SubscriptionTier.FREE
    try:
        return SubscriptionTier(tier)
    except ValueError:
        return SubscriptionTier.FREE


def get_tier_limits(tier: TierLike) -> TierLimits:
    """Return the limits for a tier. Never raises; unknown tiers get free limits."""
    return TIER_LIMITS[resolve_tier(tier)]


def coerce_feature(feature: Union[Feature, str]) -> Feature:
    if isinstance(feature, Feature):
        return feature
    try:
        return Feature(feature)
    except ValueError:
        raise KeyError(f"Unknown feature: {feature!r}") from None


def has_feature_access(tier: TierLike, feature: Union[Feature, str]) -> bool:
    """
    Check whether a tier includes a feature.

    Boolean flags are returned as-is. For the numeric monthlyApplications
    limit, any non-zero value (including -1, unlimited) counts as access.

    Raises:
        KeyError: feature is not a known feature key
    """
    key = coerce_feature(feature)
    value = getattr(get_tier_limits(tier), _FIELD_BY_FEATURE[key])
    if key in NUMERIC_FEATURES:
        return value != 0
    return bool(value)


def get_monthly_application_limit(tier: TierLike) -> int:
    """Monthly application limit for a tier; -1 means unlimited."""
    return get_tier_limits(tier).monthly_applications


def is_unlimited(tier: TierLike) -> bool:
    return get_monthly_application_limit(tier) == UNLIMITED


def get_feature_description(feature: Union[Feature, str]) -> FeatureDescription:
    return FEATURE_DESCRIPTIONS[coerce_feature(feature)]


def upgrade_message(feature: Union[Feature, str]) -> str:
    info = get_feature_description(feature)
    return f"Upgrade to {info.required_tier.display_name} to access {info.name}"


def catalog_snapshot() -> dict:
    """Serializable view of every tier and feature description."""
    return {
        "tiers": {
            tier.value: limits.model_dump(by_alias=True)
            for tier, limits in TIER_LIMITS.items()
        },
        "features": {
            feature.value: info.model_dump(by_alias=True, mode="json")
            for feature, info in FEATURE_DESCRIPTIONS.items()
        },
    }
