import pytest

from contact_discovery.errors import ExtractionError
from contact_discovery.extraction import (
    HtmlContactExtractor,
    domain_from_url,
    extract_emails,
    find_role,
    mailto_address,
)
from contact_discovery.models import FetchedContent

STAFF_PAGE = """
<html>
  <head><meta property="og:site_name" content="Daily Planet"></head>
  <body>
    <p>Lois Lane, Senior Reporter <a href="mailto:Lois.Lane@DailyPlanet.com?subject=Hi">Lois Lane</a></p>
    <div>Tips desk: tips@dailyplanet.com</div>
    <footer>Write to <a href="mailto:lois.lane@dailyplanet.com">us</a></footer>
  </body>
</html>
"""


def test_extract_emails_normalizes_and_dedupes() -> None:
    text = "Contact A@Example.com, again a@example.com, and b@example.org."
    assert extract_emails(text) == ["a@example.com", "b@example.org"]


def test_domain_from_url_and_mailto_address() -> None:
    assert domain_from_url("https://News.Example.com/path") == "news.example.com"
    assert mailto_address("mailto:Press@Example.com?subject=hi") == "press@example.com"
    assert mailto_address("https://example.com") is None
    assert mailto_address("mailto:not-an-address") is None


def test_find_role_prefers_specific_titles() -> None:
    assert find_role("Jane Doe is our Managing Editor") == "Managing Editor"
    assert find_role("freelance columnist") == "Columnist"
    assert find_role("no title here") is None


def test_extractor_reads_mailto_names_roles_and_site_name() -> None:
    content = FetchedContent(url="https://www.dailyplanet.com/staff", text=STAFF_PAGE)
    fragments = HtmlContactExtractor().extract(content)
    by_email = {fragment.email: fragment for fragment in fragments}

    assert list(by_email) == ["lois.lane@dailyplanet.com", "tips@dailyplanet.com"]
    lois = by_email["lois.lane@dailyplanet.com"]
    assert lois.name == "Lois Lane"
    assert lois.role == "Senior Reporter"
    assert lois.organization == "Daily Planet"
    tips = by_email["tips@dailyplanet.com"]
    assert tips.name is None
    assert tips.role is None


def test_extractor_handles_plain_text_and_falls_back_to_domain() -> None:
    content = FetchedContent(
        url="https://www.example.org/team",
        text="Clark Kent, columnist: clark@example.org",
    )
    [fragment] = HtmlContactExtractor().extract(content)
    assert fragment.email == "clark@example.org"
    assert fragment.name == "Clark Kent"
    assert fragment.role == "Columnist"
    assert fragment.organization == "example.org"


def test_extractor_returns_nothing_for_pages_without_emails() -> None:
    content = FetchedContent(url="https://example.org", text="<p>No contacts here</p>")
    assert HtmlContactExtractor().extract(content) == []


@pytest.mark.parametrize("text", [None, "binary\x00payload"])
def test_extractor_rejects_malformed_content(text: object) -> None:
    content = FetchedContent(url="https://example.org", text=text)  # type: ignore[arg-type]
    with pytest.raises(ExtractionError) as excinfo:
        HtmlContactExtractor().extract(content)
    assert excinfo.value.reason == "extraction_failed"


def test_mixed_case_address_is_not_read_as_a_name() -> None:
    content = FetchedContent(
        url="https://www.dailyplanet.com/contact", text="<p>Reach Lois.Lane@DailyPlanet.com</p>"
    )
    [fragment] = HtmlContactExtractor().extract(content)
    assert fragment.email == "lois.lane@dailyplanet.com"
    assert fragment.name is None
