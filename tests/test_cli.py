import json
from pathlib import Path
from typing import Any

import pytest

from contact_discovery import cli
from contact_discovery.errors import ValidationError
from contact_discovery.models import (
    CandidateContact,
    EmailValidationResult,
    HealthReport,
    SearchExecution,
    SearchStatus,
)


class FakeOrchestrator:
    def __init__(self) -> None:
        self.closed = False
        self.validated: list[tuple[str, str | None]] = []

    async def validate_email(
        self, email: str, options: Any = None, *, contact_name: str | None = None
    ) -> EmailValidationResult:
        self.validated.append((email, contact_name))
        return EmailValidationResult(
            email=email,
            is_valid=True,
            is_disposable=False,
            is_temporary=False,
            domain_exists=True,
            mx_records=True,
            spam_score=0.0,
            suggestions=(),
            reasoning="Email format: valid",
            email_type="personal",
        )

    async def health_check(self) -> HealthReport:
        return HealthReport(status="degraded", distributed=False, latency_ms=1.5)

    async def close(self) -> None:
        self.closed = True


def _execution(status: SearchStatus, *, reason: str | None = None) -> SearchExecution:
    execution = SearchExecution(id="s1", correlation_id="c1", requester_id="cli")
    execution.results = [
        CandidateContact(
            email="lois.lane@dailyplanet.com",
            source_url="https://dailyplanet.com/staff",
            confidence=0.9,
            spam_score=0.0,
            name="Lois Lane",
        )
    ]
    execution.status = status
    execution.reason = reason
    return execution


def _patch(
    monkeypatch: pytest.MonkeyPatch, execution: SearchExecution | None = None
) -> FakeOrchestrator:
    orchestrator = FakeOrchestrator()
    monkeypatch.setattr(cli, "build_orchestrator", lambda config, logger: orchestrator)

    async def fake_run_search(_orchestrator: Any, request: Any, **_kwargs: Any) -> SearchExecution:
        if request.query == "boom":
            raise ValidationError("bad query")
        assert execution is not None
        return execution

    monkeypatch.setattr(cli, "run_search", fake_run_search)
    return orchestrator


def test_parse_args_search_with_criteria() -> None:
    args = cli.parse_args(
        ["search", "climate reporters", "--countries", "US", "GB", "--beats", "energy", "--strict"]
    )
    assert args.command == "search"
    assert args.countries == ["US", "GB"]
    request = cli.namespace_to_request(args)
    assert request.criteria.countries == ("US", "GB")
    assert request.criteria.beats == ("energy",)
    assert request.options.strict_validation is True


def test_parse_args_requires_subcommand() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_main_writes_csv_on_success(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    orchestrator = _patch(monkeypatch, _execution(SearchStatus.COMPLETED))
    output = tmp_path / "contacts.csv"
    assert cli.main(["search", "climate reporters", "--output", str(output), "--no-progress"]) == 0
    assert "lois.lane@dailyplanet.com" in output.read_text(encoding="utf-8")
    assert orchestrator.closed is True


def test_main_returns_one_when_search_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _patch(monkeypatch, _execution(SearchStatus.FAILED, reason="timeout"))
    output = tmp_path / "partial.csv"
    assert cli.main(["search", "climate reporters", "--output", str(output), "--no-progress"]) == 1
    assert output.exists()


def test_main_returns_two_on_invalid_config() -> None:
    assert cli.main(["search", "climate reporters", "--max-concurrency", "0"]) == 2


def test_main_returns_two_on_invalid_input(monkeypatch: pytest.MonkeyPatch) -> None:
    orchestrator = _patch(monkeypatch)
    assert cli.main(["search", "boom", "--no-progress"]) == 2
    assert orchestrator.closed is True


def test_validate_email_prints_result(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    orchestrator = _patch(monkeypatch)
    assert cli.main(["validate-email", "lois.lane@dailyplanet.com", "--name", "Lois Lane"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["email_type"] == "personal"
    assert orchestrator.validated == [("lois.lane@dailyplanet.com", "Lois Lane")]


def test_health_prints_report(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch(monkeypatch)
    assert cli.main(["health"]) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "degraded"
