"""
Text cleaning for billing emails.

Handles:
1. HTML → Plain Text conversion
2. Whitespace normalisation and the bounded body excerpt
"""

import re
from bs4 import BeautifulSoup

# Characters of body text kept per email
BODY_EXCERPT_CHARS = 2000


def html_to_text(raw_html: str) -> str:
    """
    Convert HTML email content to plain text.

    Args:
        raw_html: Raw HTML string from email body

    Returns:
        Plain text with normalized whitespace
    """
    if not raw_html:
        return ""

    soup = BeautifulSoup(raw_html, "html.parser")

    # Remove script, style, and head tags
    for tag in soup(['script', 'style', 'head', 'meta', 'link', 'title']):
        tag.decompose()

    # Convert <br> and block ends to newlines so anchor phrases and dates
    # from different table cells don't run together
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for block in soup.find_all(['p', 'div', 'tr', 'li', 'h1', 'h2', 'h3']):
        block.insert_after('\n')

    text = soup.get_text(separator=' ')
    return normalize_whitespace(text)


def normalize_whitespace(text: str) -> str:
    text = text.replace('\r\n', '\n').replace('\xa0', ' ')
    text = re.sub(r'[ \t]+', ' ', text)  # Multiple spaces to single
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)  # Max 2 newlines
    return text.strip()


def build_body_excerpt(plain_text: str = "", html: str = "", limit: int = BODY_EXCERPT_CHARS) -> str:
    """
    Plain-text excerpt of an email body.

    Prefers the text/plain part; falls back to the HTML part converted
    with BeautifulSoup.
    """
    if plain_text and plain_text.strip():
        text = normalize_whitespace(plain_text)
    else:
        text = html_to_text(html)
    return text[:limit]
