"""
Module: types
Purpose: Shared domain types for the analyzer pipeline.
Dependencies: pydantic (inbound models only)

Stable import boundary: vocabularies, inbound email/context shapes, the
AnalyzerResult envelope and the link types shared by ContentDigest, the link
resolver and the event stages. Keeping them in a leaf module prevents
circular imports between stage modules, the contract and the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def vocabulary(enum_cls: type[Enum]) -> frozenset[str]:
    """Closed set of wire values for a str Enum."""
    return frozenset(member.value for member in enum_cls)


# ---------------------------------------------------------------------------
# Categorizer vocabularies
# ---------------------------------------------------------------------------


class Category(str, Enum):
    """Primary life-area bucket for an email."""

    NEWSLETTERS_CREATOR = "newsletters_creator"
    NEWSLETTERS_INDUSTRY = "newsletters_industry"
    NEWS_POLITICS = "news_politics"
    PRODUCT_UPDATES = "product_updates"
    LOCAL = "local"
    SHOPPING = "shopping"
    TRAVEL = "travel"
    FINANCE = "finance"
    FAMILY = "family"
    CLIENTS = "clients"
    WORK = "work"
    PERSONAL_FRIENDS_FAMILY = "personal_friends_family"
    NOTIFICATIONS = "notifications"


class Label(str, Enum):
    """Secondary multi-valued tags, orthogonal to Category."""

    # Action
    NEEDS_REPLY = "needs_reply"
    NEEDS_DECISION = "needs_decision"
    NEEDS_REVIEW = "needs_review"
    NEEDS_APPROVAL = "needs_approval"
    # Urgency
    URGENT = "urgent"
    HAS_DEADLINE = "has_deadline"
    TIME_SENSITIVE = "time_sensitive"
    # Relationship
    FROM_VIP = "from_vip"
    NEW_CONTACT = "new_contact"
    NETWORKING_OPPORTUNITY = "networking_opportunity"
    # Content
    HAS_ATTACHMENT = "has_attachment"
    HAS_LINK = "has_link"
    HAS_QUESTION = "has_question"
    HAS_EVENT = "has_event"
    HAS_MULTIPLE_EVENTS = "has_multiple_events"
    # Location / personal
    LOCAL_EVENT = "local_event"
    FAMILY_RELATED = "family_related"
    COMMUNITY = "community"
    # Financial
    INVOICE = "invoice"
    RECEIPT = "receipt"
    PAYMENT_DUE = "payment_due"
    # Calendar
    MEETING_REQUEST = "meeting_request"
    RSVP_NEEDED = "rsvp_needed"
    APPOINTMENT = "appointment"
    # Learning
    EDUCATIONAL = "educational"
    INDUSTRY_NEWS = "industry_news"
    JOB_OPPORTUNITY = "job_opportunity"
    # Noise
    SALES_PITCH = "sales_pitch"
    WEBINAR_INVITE = "webinar_invite"
    FAKE_RECOGNITION = "fake_recognition"
    MASS_OUTREACH = "mass_outreach"
    PROMOTIONAL = "promotional"


class SignalStrength(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NOISE = "noise"


class ReplyWorthiness(str, Enum):
    MUST_REPLY = "must_reply"
    SHOULD_REPLY = "should_reply"
    OPTIONAL_REPLY = "optional_reply"
    NO_REPLY = "no_reply"


class QuickAction(str, Enum):
    RESPOND = "respond"
    REVIEW = "review"
    ARCHIVE = "archive"
    SAVE = "save"
    CALENDAR = "calendar"
    UNSUBSCRIBE = "unsubscribe"
    FOLLOW_UP = "follow_up"
    NONE = "none"


# ---------------------------------------------------------------------------
# Content digest / link vocabularies
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    SINGLE_TOPIC = "single_topic"
    MULTI_TOPIC_DIGEST = "multi_topic_digest"
    CURATED_LINKS = "curated_links"
    PERSONAL_UPDATE = "personal_update"
    TRANSACTIONAL = "transactional"


class LinkType(str, Enum):
    ARTICLE = "article"
    REGISTRATION = "registration"
    DOCUMENT = "document"
    VIDEO = "video"
    PRODUCT = "product"
    TOOL = "tool"
    SOCIAL = "social"
    UNSUBSCRIBE = "unsubscribe"
    OTHER = "other"


class LinkPriority(str, Enum):
    MUST_READ = "must_read"
    WORTH_READING = "worth_reading"
    REFERENCE = "reference"
    SKIP = "skip"


# ---------------------------------------------------------------------------
# Action / date / event vocabularies
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    RESPOND = "respond"
    REVIEW = "review"
    CREATE = "create"
    SCHEDULE = "schedule"
    DECIDE = "decide"
    PAY = "pay"
    SUBMIT = "submit"
    REGISTER = "register"
    BOOK = "book"
    NONE = "none"


class DateType(str, Enum):
    DEADLINE = "deadline"
    EVENT = "event"
    APPOINTMENT = "appointment"
    PAYMENT_DUE = "payment_due"
    EXPIRATION = "expiration"
    FOLLOW_UP = "follow_up"
    BIRTHDAY = "birthday"
    ANNIVERSARY = "anniversary"
    RECURRING = "recurring"
    REMINDER = "reminder"
    OTHER = "other"


class Recurrence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class LocationType(str, Enum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"
    UNKNOWN = "unknown"


class EventLocality(str, Enum):
    LOCAL = "local"
    OUT_OF_TOWN = "out_of_town"
    VIRTUAL = "virtual"


class KeyDateType(str, Enum):
    REGISTRATION_DEADLINE = "registration_deadline"
    OPEN_HOUSE = "open_house"
    DEADLINE = "deadline"
    RELEASE_DATE = "release_date"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Contact / client vocabularies
# ---------------------------------------------------------------------------


class RelationshipSignal(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


class RelationshipType(str, Enum):
    CLIENT = "client"
    COLLEAGUE = "colleague"
    VENDOR = "vendor"
    FRIEND = "friend"
    FAMILY = "family"
    RECRUITER = "recruiter"
    SERVICE = "service"
    NETWORKING = "networking"
    UNKNOWN = "unknown"


class SenderType(str, Enum):
    DIRECT = "direct"
    BROADCAST = "broadcast"
    COLD_OUTREACH = "cold_outreach"
    OPPORTUNITY = "opportunity"
    UNKNOWN = "unknown"


class BroadcastSubtype(str, Enum):
    NEWSLETTER_AUTHOR = "newsletter_author"
    COMPANY_NEWSLETTER = "company_newsletter"
    DIGEST_SERVICE = "digest_service"
    TRANSACTIONAL = "transactional"


class SenderTypeSource(str, Enum):
    AI = "ai"
    HEADER = "header"
    EMAIL_PATTERN = "email_pattern"


class ContactSource(str, Enum):
    SIGNATURE = "signature"
    EMAIL_BODY = "email_body"
    BOTH = "both"


# ---------------------------------------------------------------------------
# Inbound shapes (supplied by the persistence collaborator)
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    """Frozen, camelCase-tolerant base for inbound payloads."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class EmailInput(_Inbound):
    """One email to analyze. Immutable for the duration of a run."""

    id: str
    sender_email: str
    date: str = Field(description="ISO-8601 timestamp the email was sent")
    subject: str | None = None
    sender_name: str | None = None
    snippet: str | None = None
    body_text: str | None = None
    gmail_labels: tuple[str, ...] = ()
    headers: dict[str, str] = Field(default_factory=dict)


class Client(_Inbound):
    id: str
    name: str
    company: str | None = None
    email_domains: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    status: str = "active"
    priority: str = "medium"


class FamilyContext(_Inbound):
    spouse_name: str | None = None
    kid_names: tuple[str, ...] = ()


class WorkHours(_Inbound):
    start: str = "09:00"
    end: str = "17:00"
    days: tuple[int, ...] = (1, 2, 3, 4, 5)


class UserContext(_Inbound):
    """Per-user personalization. Read-only to every stage."""

    user_id: str
    clients: tuple[Client, ...] = ()
    timezone: str | None = None
    role: str | None = None
    company: str | None = None
    location_city: str | None = None
    location_metro: str | None = None
    priorities: tuple[str, ...] = ()
    projects: tuple[str, ...] = ()
    vip_emails: tuple[str, ...] = ()
    vip_domains: tuple[str, ...] = ()
    interests: tuple[str, ...] = ()
    family_context: FamilyContext | None = None
    work_hours: WorkHours | None = None


# ---------------------------------------------------------------------------
# Links (ContentDigest output, LinkResolver input/output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractedLink:
    """A link ContentDigest found in the email body."""

    url: str
    type: str = LinkType.OTHER.value
    title: str = ""
    description: str = ""
    is_main_content: bool = False


@dataclass(frozen=True)
class ResolvedLink:
    """Text extracted from a fetched linked page."""

    url: str
    title: str | None
    text: str
    fetched_in_ms: int = 0


@dataclass(frozen=True)
class StageExtras:
    """
    Per-call parameters for a stage.

    Passed explicitly on every invocation so that concurrent calls on the same
    stage definition never share mutable state.
    """

    raw_links: tuple[ExtractedLink, ...] = ()
    resolved_pages: tuple[ResolvedLink, ...] = ()
    reference_date: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Correction:
    """One repair applied while normalizing a raw model payload."""

    field: str
    kind: str  # "defaulted" | "coerced" | "out_of_vocabulary" | "aliased" | "clamped" | "truncated" | "dropped_items" | "contradiction" | "synthesized" | "unresolved"
    original: Any = None
    replacement: Any = None

    def __str__(self) -> str:
        return f"{self.field}: {self.kind} ({self.original!r} -> {self.replacement!r})"


@dataclass
class AnalyzerResult(Generic[T]):
    """
    Outcome of one stage invocation.

    Invariant: success=False implies data is the stage's empty shape,
    confidence is 0 and tokens_used is 0.
    """

    success: bool
    data: T
    confidence: float
    tokens_used: int = 0
    processing_time_ms: int = 0
    estimated_cost: float = 0.0
    error: str | None = None
    corrections: list[Correction] = field(default_factory=list)

    @classmethod
    def failure(cls, data: T, error: str, processing_time_ms: int = 0) -> AnalyzerResult[T]:
        """Factory for a failed invocation."""
        return cls(
            success=False,
            data=data,
            confidence=0.0,
            tokens_used=0,
            processing_time_ms=max(0, processing_time_ms),
            estimated_cost=0.0,
            error=error,
        )
