"""Contact fragment extraction and URL normalization utilities."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from .errors import ExtractionError
from .models import ContactFragment, FetchedContent

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}", re.IGNORECASE)
PERSON_NAME = re.compile(r"\b([A-Z][a-z'\-]+(?:\s+[A-Z][a-z'\-]+){1,3})\b")

# Ordered so that more specific titles win over their substrings.
ROLE_KEYWORDS: tuple[str, ...] = (
    "editor-in-chief",
    "managing editor",
    "senior editor",
    "news editor",
    "editor",
    "senior reporter",
    "reporter",
    "correspondent",
    "journalist",
    "columnist",
    "producer",
    "writer",
    "contributor",
    "blogger",
    "podcaster",
    "press officer",
    "communications manager",
)


def domain_from_url(url: str) -> str:
    """Extract lowercase hostname from URL."""
    return urlparse(url).netloc.lower()


def extract_emails(text: str) -> list[str]:
    """Return normalized emails discovered in plain text, first-seen order."""
    return list(dict.fromkeys(match.group(0).lower() for match in EMAIL_REGEX.finditer(text or "")))


def mailto_address(href: str) -> str | None:
    """Return the address of a ``mailto:`` link, or None."""
    if not href.lower().startswith("mailto:"):
        return None
    address = href.split(":", maxsplit=1)[1].split("?", maxsplit=1)[0].strip().lower()
    return address if EMAIL_REGEX.fullmatch(address) else None


def find_role(text: str) -> str | None:
    lowered = text.lower()
    for keyword in ROLE_KEYWORDS:
        if keyword in lowered:
            return keyword.title()
    return None


def find_name(text: str) -> str | None:
    match = PERSON_NAME.search(text)
    return match.group(1) if match else None


def _anchor_name(anchor: Tag) -> str | None:
    label = anchor.get_text(" ", strip=True)
    if not label or "@" in label:
        return None
    words = label.split()
    if not 2 <= len(words) <= 4:
        return None
    if all(word[:1].isupper() and re.sub(r"['\-]", "", word).isalpha() for word in words):
        return label
    return None


def _without_address(text: str, address: str) -> str:
    return re.sub(re.escape(address), " ", text, flags=re.IGNORECASE)


def _context_text(node: Tag) -> str:
    parent = node.parent
    if isinstance(parent, Tag):
        return parent.get_text(" ", strip=True)
    return node.get_text(" ", strip=True)


def _organization(soup: BeautifulSoup, url: str) -> str | None:
    meta = soup.find("meta", attrs={"property": "og:site_name"})
    if isinstance(meta, Tag):
        content = str(meta.get("content") or "").strip()
        if content:
            return content
    domain = domain_from_url(url)
    if domain.startswith("www."):
        domain = domain[4:]
    return domain or None


class HtmlContactExtractor:
    """Pulls email-bearing contact fragments out of HTML or plain text."""

    def extract(self, content: FetchedContent) -> list[ContactFragment]:
        if not isinstance(content.text, str):
            raise ExtractionError(f"Content from {content.url} is not text.")
        if "\x00" in content.text:
            raise ExtractionError(f"Content from {content.url} looks binary.")

        soup = BeautifulSoup(content.text, "html.parser")
        organization = _organization(soup, content.url)
        fragments: dict[str, ContactFragment] = {}

        for anchor in soup.find_all("a", href=True):
            address = mailto_address(str(anchor["href"]))
            if address is None or address in fragments:
                continue
            context = _context_text(anchor)
            fragments[address] = ContactFragment(
                email=address,
                name=_anchor_name(anchor) or find_name(context),
                role=find_role(context),
                organization=organization,
            )

        for node in soup.find_all(string=EMAIL_REGEX):
            context = str(node.parent.get_text(" ", strip=True)) if node.parent else str(node)
            for address in extract_emails(str(node)):
                if address in fragments:
                    continue
                fragments[address] = ContactFragment(
                    email=address,
                    name=find_name(_without_address(context, address)),
                    role=find_role(context),
                    organization=organization,
                )
        return list(fragments.values())
