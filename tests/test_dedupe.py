from contact_discovery.dedupe import merge_candidates
from contact_discovery.models import CandidateContact


def _candidate(email: str, confidence: float, **fields: str) -> CandidateContact:
    return CandidateContact(
        email=email,
        source_url="https://example.com",
        confidence=confidence,
        spam_score=0.0,
        **fields,  # type: ignore[arg-type]
    )


def test_matching_keys_merge_keeping_highest_confidence() -> None:
    low = _candidate("Lois.Lane@Example.com", 0.5, name="Lois Lane", organization="Daily Planet")
    high = _candidate("lois.lane@example.com", 0.9, role="Senior Reporter")

    [merged] = merge_candidates([low, high])

    assert merged.email == "lois.lane@example.com"
    assert merged.confidence == 0.9
    assert merged.role == "Senior Reporter"
    assert merged.name == "Lois Lane"
    assert merged.organization == "Daily Planet"


def test_winner_fields_are_not_overwritten() -> None:
    first = _candidate("a@example.com", 0.7, name="First Name")
    second = _candidate("a@example.com", 0.7, name="Second Name")
    [merged] = merge_candidates([first, second])
    assert merged.name == "First Name"


def test_results_sorted_by_confidence_and_inputs_untouched() -> None:
    candidates = [
        _candidate("b@example.com", 0.2),
        _candidate("a@example.com", 0.8),
        _candidate("c@example.com", 0.5),
    ]
    ranked = merge_candidates(candidates)
    assert [item.email for item in ranked] == ["a@example.com", "c@example.com", "b@example.com"]
    assert ranked[0] is not candidates[1]
    assert merge_candidates([]) == []
