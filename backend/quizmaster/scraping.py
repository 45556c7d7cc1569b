from typing import Tuple

import requests
from bs4 import BeautifulSoup  # type: ignore

USER_AGENT = "QuizMaster/1.0 (article-assisted quiz authoring)"

# Elements inside the article body that never hold prose worth quizzing on
NOISE_SELECTORS = (
    "table",
    "div.navbox",
    "div.infobox",
    "div.reflist",
    "div.thumb",
    "div.hatnote",
    "span.mw-editsection",
    "sup.reference",
)

MIN_PARAGRAPH_CHARS = 40


def extract_article(html: str) -> Tuple[str, str]:
    """Pull (title, plain text) out of a Wikipedia article page."""
    soup = BeautifulSoup(html, "html.parser")

    heading = soup.select_one("h1#firstHeading") or soup.find("h1")
    title = heading.get_text(" ", strip=True) if heading else ""
    if not title and soup.title:
        title = soup.title.get_text(strip=True).split(" - ")[0]

    body = soup.select_one("div.mw-parser-output") or soup.select_one("#mw-content-text") or soup.body
    if body is None:
        return title, ""

    for selector in NOISE_SELECTORS:
        for el in body.select(selector):
            el.decompose()

    paragraphs = [p.get_text(" ", strip=True) for p in body.find_all("p")]
    text = "\n\n".join(p for p in paragraphs if len(p) >= MIN_PARAGRAPH_CHARS)
    if not text:
        # Stub articles: fall back to whatever text the body has
        text = body.get_text("\n", strip=True)
    return title, text


def fetch_article(url: str, timeout: int = 20) -> Tuple[str, str]:
    """Download an article and return (title, plain text)."""
    resp = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    resp.raise_for_status()
    return extract_article(resp.text)
