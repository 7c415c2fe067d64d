"""Merge duplicate candidate contacts and rank them."""

from __future__ import annotations

from dataclasses import replace

from .models import CandidateContact

MERGEABLE_FIELDS = ("name", "role", "organization")


def _fill_gaps(winner: CandidateContact, other: CandidateContact) -> CandidateContact:
    filled = {
        name: getattr(other, name)
        for name in MERGEABLE_FIELDS
        if not getattr(winner, name) and getattr(other, name)
    }
    return replace(winner, **filled) if filled else winner


def merge_candidates(candidates: list[CandidateContact]) -> list[CandidateContact]:
    """Collapse candidates sharing a dedup key and sort by confidence.

    The highest-confidence instance wins; empty name/role/organization fields
    are filled from the losers. Ties keep the first-seen instance.
    """
    merged: dict[str, CandidateContact] = {}
    for candidate in candidates:
        key = candidate.dedup_key
        existing = merged.get(key)
        if existing is None:
            merged[key] = replace(candidate)
            continue
        if candidate.confidence > existing.confidence:
            merged[key] = _fill_gaps(replace(candidate), existing)
        else:
            merged[key] = _fill_gaps(existing, candidate)
    return sorted(merged.values(), key=lambda item: (-item.confidence, item.dedup_key))
