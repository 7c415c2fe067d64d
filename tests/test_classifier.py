import asyncio

import pytest

from contact_discovery.classifier import HeuristicEmailClassifier, personal_email_suggestions


@pytest.mark.parametrize(
    ("email", "email_type", "confidence"),
    [
        ("jane.doe@example.com", "personal", 0.9),
        ("jane@example.com", "personal", 0.8),
        ("tips@example.com", "alias", 0.95),
        ("newsdesk@example.com", "alias", 0.95),
        ("info@example.com", "alias", 0.75),
        ("contact@example.com", "alias", 0.8),
        ("sports@example.com", "department", 0.8),
        ("support@example.com", "generic", 0.9),
        ("no-reply@example.com", "generic", 0.95),
    ],
)
def test_pattern_table(email: str, email_type: str, confidence: float) -> None:
    result = HeuristicEmailClassifier().classify_sync(email)
    assert result.email_type == email_type
    assert result.confidence == confidence
    assert result.contact_method


def test_fallback_heuristics_for_unmatched_addresses() -> None:
    classifier = HeuristicEmailClassifier()
    assert classifier.classify_sync("jane_doe.2@example.com").email_type == "personal"
    assert classifier.classify_sync("123@example.com").email_type == "generic"
    unknown = classifier.classify_sync("x_team_account@example.com")
    assert unknown.email_type == "unknown"
    assert unknown.confidence == 0.3


def test_alias_alternatives_need_a_contact_name() -> None:
    classifier = HeuristicEmailClassifier()
    without_name = asyncio.run(classifier.classify("press@example.com"))
    with_name = asyncio.run(classifier.classify("press@example.com", "Clark Kent"))
    assert without_name.alternative_emails == ()
    assert with_name.alternative_emails == (
        "clark.kent@example.com",
        "clark@example.com",
        "c.kent@example.com",
    )


def test_personal_email_suggestions_requires_full_name() -> None:
    assert personal_email_suggestions("Cher", "example.com") == ()
    assert personal_email_suggestions("Lois Joanne Lane", "example.com", limit=1) == (
        "lois.lane@example.com",
    )
