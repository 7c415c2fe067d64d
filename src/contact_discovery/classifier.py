"""Heuristic email-type classifier for media contacts."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import EmailClassification, EmailType


@dataclass(frozen=True)
class EmailPattern:
    pattern: re.Pattern[str]
    email_type: EmailType
    confidence: float
    description: str
    catch_all: bool = False


def _p(
    regex: str,
    email_type: EmailType,
    confidence: float,
    description: str,
    *,
    catch_all: bool = False,
) -> EmailPattern:
    return EmailPattern(
        re.compile(regex, re.IGNORECASE), email_type, confidence, description, catch_all
    )


EMAIL_PATTERNS: tuple[EmailPattern, ...] = (
    _p(r"^[a-z]+\.[a-z]+@", "personal", 0.9, "First name and last name format"),
    _p(r"^[a-z]+[a-z0-9]*@", "personal", 0.8, "Personal name format", catch_all=True),
    _p(r"^[a-z]\.[a-z]+@", "personal", 0.85, "First initial and last name"),
    _p(r"^tips?@", "alias", 0.95, "Tips submission email"),
    _p(r"^story@", "alias", 0.85, "Story submission email"),
    _p(r"^news@", "alias", 0.8, "News submission email"),
    _p(r"^newsdesk@", "alias", 0.95, "Newsdesk email"),
    _p(r"^newsroom@", "alias", 0.9, "Newsroom email"),
    _p(r"^editorial@", "alias", 0.9, "Editorial team email"),
    _p(r"^editors?@", "alias", 0.85, "Editor email"),
    _p(r"^press@", "alias", 0.95, "Press relations email"),
    _p(r"^media@", "alias", 0.9, "Media relations email"),
    _p(r"^pr@", "alias", 0.85, "PR team email"),
    _p(r"^contact@", "alias", 0.8, "General contact email"),
    _p(r"^hello@", "alias", 0.75, "General hello email"),
    _p(r"^hi@", "alias", 0.7, "General hi email"),
    _p(r"^info@", "alias", 0.75, "General info email"),
    _p(r"^business@", "department", 0.8, "Business department email"),
    _p(r"^tech@", "department", 0.8, "Technology department email"),
    _p(r"^sports@", "department", 0.8, "Sports department email"),
    _p(r"^politics@", "department", 0.8, "Politics department email"),
    _p(r"^admin@", "generic", 0.9, "Administrative email"),
    _p(r"^support@", "generic", 0.9, "Support email"),
    _p(r"^help@", "generic", 0.85, "Help desk email"),
    _p(r"^no-?reply@", "generic", 0.95, "No-reply email"),
)

CONTACT_METHODS: dict[str, str] = {
    "alias": "Consider finding a direct reporter email for better response rates",
    "generic": "Look for specific department or reporter emails",
    "department": "Good for beat-specific pitches, but personal contacts are preferred",
    "personal": "Excellent - direct personal contact",
    "unknown": "Verify email format and consider alternative contact methods",
}


def personal_email_suggestions(contact_name: str, domain: str, limit: int = 3) -> tuple[str, ...]:
    """Guess personal addresses at a domain from a contact's name."""
    parts = [part for part in re.split(r"\s+", contact_name.lower().strip()) if part]
    if len(parts) < 2 or not domain:
        return ()
    first, last = parts[0], parts[-1]
    candidates = (
        f"{first}.{last}@{domain}",
        f"{first}@{domain}",
        f"{first[0]}.{last}@{domain}",
        f"{first}{last}@{domain}",
    )
    return candidates[:limit]


class HeuristicEmailClassifier:
    """Pattern-table classifier; the highest-confidence match wins."""

    def __init__(self, patterns: tuple[EmailPattern, ...] = EMAIL_PATTERNS) -> None:
        self._patterns = patterns

    def classify_sync(self, email: str, contact_name: str | None = None) -> EmailClassification:
        lowered = email.strip().lower()
        matches = [pattern for pattern in self._patterns if pattern.pattern.search(lowered)]
        # Role addresses such as info@ also fit the single-token name shape.
        specific = [pattern for pattern in matches if not pattern.catch_all]
        matches = specific or matches
        if not matches:
            email_type, confidence, reasoning = _fallback_guess(lowered)
        else:
            best = max(matches, key=lambda pattern: pattern.confidence)
            email_type, confidence, reasoning = best.email_type, best.confidence, best.description

        alternatives: tuple[str, ...] = ()
        if email_type == "alias" and contact_name:
            domain = lowered.split("@", maxsplit=1)[-1]
            alternatives = personal_email_suggestions(contact_name, domain)
        return EmailClassification(
            email_type=email_type,
            confidence=confidence,
            reasoning=reasoning,
            alternative_emails=alternatives,
            contact_method=CONTACT_METHODS[email_type],
        )

    async def classify(self, email: str, contact_name: str | None = None) -> EmailClassification:
        return self.classify_sync(email, contact_name)


def _fallback_guess(email: str) -> tuple[EmailType, float, str]:
    local_part = email.split("@", maxsplit=1)[0]
    reasoning = "Unknown pattern - classified based on heuristics"
    if "." in local_part and len(local_part) > 3:
        return "personal", 0.6, reasoning
    if len(local_part) < 4 or local_part.isdigit():
        return "generic", 0.7, reasoning
    return "unknown", 0.3, reasoning
