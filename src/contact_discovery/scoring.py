"""Contact confidence scoring rules."""

from __future__ import annotations

from .extraction import ROLE_KEYWORDS, domain_from_url
from .models import ContactFragment, EmailValidationResult

NAME_WEIGHT = 0.25
EMAIL_WEIGHT = 0.30
ROLE_WEIGHT = 0.20
SOURCE_WEIGHT = 0.25
SPAM_PENALTY = 0.5

EMAIL_TYPE_SCORES = {
    "personal": 1.0,
    "alias": 0.8,
    "department": 0.6,
    "unknown": 0.5,
    "generic": 0.4,
}


def name_clarity(name: str | None) -> float:
    """Full names score highest, single tokens partially."""
    if not name or not name.strip():
        return 0.0
    return 1.0 if len(name.split()) >= 2 else 0.5


def role_relevance(role: str | None) -> float:
    if not role:
        return 0.0
    return 1.0 if role.lower() in ROLE_KEYWORDS else 0.5


def source_authority(email: str, source_url: str) -> float:
    """Emails published on their own domain are the most trustworthy."""
    source_domain = domain_from_url(source_url)
    if source_domain.startswith("www."):
        source_domain = source_domain[4:]
    email_domain = email.rsplit("@", maxsplit=1)[-1].lower()
    if source_domain and (
        email_domain == source_domain or email_domain.endswith("." + source_domain)
    ):
        return 1.0
    return 0.7 if source_url.startswith("https://") else 0.5


def score_contact(
    fragment: ContactFragment, validation: EmailValidationResult, source_url: str
) -> float:
    """Return a confidence in [0, 1] for a validated contact fragment."""
    email_score = EMAIL_TYPE_SCORES.get(validation.email_type, 0.5) if validation.is_valid else 0.0
    base = (
        NAME_WEIGHT * name_clarity(fragment.name)
        + EMAIL_WEIGHT * email_score
        + ROLE_WEIGHT * role_relevance(fragment.role)
        + SOURCE_WEIGHT * source_authority(fragment.email, source_url)
    )
    penalised = base * (1.0 - SPAM_PENALTY * validation.spam_score)
    return round(max(0.0, min(1.0, penalised)), 4)


def quality_label(confidence: float) -> str:
    """Compute High/Medium/Low quality from a contact confidence."""
    if confidence >= 0.75:
        return "High"
    if confidence >= 0.5:
        return "Medium"
    return "Low"
