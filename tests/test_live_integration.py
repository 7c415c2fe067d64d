import os

import pytest

from contact_discovery.cli import main

requires_live = pytest.mark.skipif(
    os.getenv("RUN_LIVE_INTEGRATION") != "1",
    reason="Set RUN_LIVE_INTEGRATION=1 to execute live integration tests.",
)


@requires_live
def test_live_health_command_smoke() -> None:
    assert main(["health"]) == 0


@requires_live
def test_live_validate_email_with_dns_free_checks() -> None:
    assert main(["validate-email", "press@example.com"]) == 0
