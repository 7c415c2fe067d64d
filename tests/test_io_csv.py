import csv
from pathlib import Path

from contact_discovery.io_csv import CSV_FIELDS, contact_rows, write_rows
from contact_discovery.models import CandidateContact


def test_contact_rows_flatten_candidates() -> None:
    rows = contact_rows(
        [
            CandidateContact(
                email="lois.lane@dailyplanet.com",
                source_url="https://www.dailyplanet.com/staff",
                confidence=0.91234,
                spam_score=0.0,
                name="Lois Lane",
                role="Senior Reporter",
            ),
            CandidateContact(
                email="tips@dailyplanet.com",
                source_url="https://www.dailyplanet.com/contact",
                confidence=0.4,
                spam_score=0.2,
            ),
        ]
    )
    assert rows[0]["name"] == "Lois Lane"
    assert rows[0]["domain"] == "www.dailyplanet.com"
    assert rows[0]["confidence"] == "0.91"
    assert rows[0]["quality"] == "High"
    assert rows[1]["name"] == ""
    assert rows[1]["quality"] == "Low"
    assert set(rows[0]) == set(CSV_FIELDS)


def test_write_rows_creates_csv_with_schema(tmp_path: Path) -> None:
    output = tmp_path / "out.csv"
    rows = contact_rows(
        [
            CandidateContact(
                email="a@example.com",
                source_url="https://example.com",
                confidence=0.6,
                spam_score=0.0,
            )
        ]
    )
    write_rows(str(output), rows)
    text = output.read_text(encoding="utf-8")
    assert text.splitlines()[0] == ",".join(CSV_FIELDS)
    with output.open(newline="", encoding="utf-8") as file_obj:
        [row] = list(csv.DictReader(file_obj))
    assert row["email"] == "a@example.com"
    assert row["quality"] == "Medium"
