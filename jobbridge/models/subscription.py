"""
jobbridge/models/subscription.py

Subscription tier models.

A tier is a named bundle of entitlements: one numeric quota and a set of
feature flags. Records are immutable and defined once at import time.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class TierLimits(BaseModel):
    """
    Entitlements for one tier.

    Serialized with camelCase keys (``monthlyApplications``, ``aiResumeBuilder``)
    since that is what the front end reads.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    monthly_applications: int  # -1 = unlimited
    ai_resume_builder: bool = False
    ai_resume_parsing: bool = False
    ai_interview_prep: bool = False
    ai_job_recommendations: bool = False
    ai_cover_letter: bool = False
    ai_skills_gap: bool = False
    ai_chat_assistant: bool = False
    ai_application_tips: bool = False
    bulk_apply: bool = False
    priority_support: bool = False
    analytics_access: bool = False
    api_access: bool = False
    team_features: bool = False


class Feature(str, Enum):
    """Feature keys, using the camelCase names the front end knows."""
    MONTHLY_APPLICATIONS = "monthlyApplications"
    AI_RESUME_BUILDER = "aiResumeBuilder"
    AI_RESUME_PARSING = "aiResumeParsing"
    AI_INTERVIEW_PREP = "aiInterviewPrep"
    AI_JOB_RECOMMENDATIONS = "aiJobRecommendations"
    AI_COVER_LETTER = "aiCoverLetter"
    AI_SKILLS_GAP = "aiSkillsGap"
    AI_CHAT_ASSISTANT = "aiChatAssistant"
    AI_APPLICATION_TIPS = "aiApplicationTips"
    BULK_APPLY = "bulkApply"
    PRIORITY_SUPPORT = "prioritySupport"
    ANALYTICS_ACCESS = "analyticsAccess"
    API_ACCESS = "apiAccess"
    TEAM_FEATURES = "teamFeatures"


class FeatureDescription(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str
    description: str
    required_tier: SubscriptionTier
