"""
Known billing senders for subscription detection.

Maps a sender domain fragment to the canonical service name shown on the
dashboard, its logo and the spending category a new detection is filed
under (only used when the user has no category of that name yet).

Matching is case-insensitive substring containment against the From header
and the FIRST entry that matches wins, so the order below is significant.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Tuple

LOGO_BASE_URL = "https://logo.clearbit.com"

# Fallback colour for categories not listed in CATEGORY_COLORS
DEFAULT_CATEGORY_COLOR = "#64748B"

CATEGORY_COLORS = {
    "Entertainment": "#E50914",
    "Music": "#1DB954",
    "Productivity": "#4F46E5",
    "Cloud": "#FF9900",
    "Design": "#A259FF",
    "Developer Tools": "#181717",
    "Communication": "#4A154B",
    "AI Tools": "#10A37F",
    "Marketing": "#F59E0B",
    "Business": "#06B6D4",
    "Security": "#0094F5",
    "Education": "#0A66C2",
    "Health & Fitness": "#1CBF73",
    "Gaming": "#107C10",
    "Food & Delivery": "#FF3008",
    "Utilities": "#64748B",
}


@dataclass(frozen=True)
class PatternEntry:
    """One known billing sender."""
    sender_fragment: str
    canonical_name: str
    logo_url: str
    default_category: str

    @property
    def website_url(self) -> str:
        return f"https://{self.sender_fragment}"


def _entry(sender: str, name: str, category: str) -> PatternEntry:
    return PatternEntry(
        sender_fragment=sender,
        canonical_name=name,
        logo_url=f"{LOGO_BASE_URL}/{sender}",
        default_category=category,
    )


DEFAULT_PATTERNS: Tuple[PatternEntry, ...] = (
    # Streaming & Entertainment
    _entry("netflix.com", "Netflix", "Entertainment"),
    _entry("spotify.com", "Spotify", "Music"),
    _entry("apple.com", "Apple", "Entertainment"),
    _entry("hulu.com", "Hulu", "Entertainment"),
    _entry("disneyplus.com", "Disney+", "Entertainment"),
    _entry("max.com", "Max (HBO)", "Entertainment"),
    _entry("hbo.com", "HBO Max", "Entertainment"),
    _entry("paramountplus.com", "Paramount+", "Entertainment"),
    _entry("peacocktv.com", "Peacock", "Entertainment"),
    _entry("crunchyroll.com", "Crunchyroll", "Entertainment"),
    _entry("youtube.com", "YouTube Premium", "Entertainment"),
    _entry("twitch.tv", "Twitch", "Entertainment"),
    _entry("audible.com", "Audible", "Entertainment"),
    _entry("scribd.com", "Scribd", "Entertainment"),
    _entry("plex.tv", "Plex Pass", "Entertainment"),
    _entry("dazn.com", "DAZN", "Entertainment"),
    # Music
    _entry("tidal.com", "Tidal", "Music"),
    _entry("deezer.com", "Deezer", "Music"),
    # Cloud & Productivity
    _entry("amazon.com", "Amazon Prime", "Cloud"),
    _entry("microsoft.com", "Microsoft 365", "Productivity"),
    _entry("google.com", "Google One", "Cloud"),
    _entry("dropbox.com", "Dropbox", "Cloud"),
    _entry("notion.so", "Notion", "Productivity"),
    _entry("evernote.com", "Evernote", "Productivity"),
    _entry("airtable.com", "Airtable", "Productivity"),
    _entry("monday.com", "Monday.com", "Productivity"),
    _entry("asana.com", "Asana", "Productivity"),
    _entry("trello.com", "Trello", "Productivity"),
    _entry("atlassian.com", "Atlassian", "Productivity"),
    _entry("linear.app", "Linear", "Productivity"),
    _entry("todoist.com", "Todoist", "Productivity"),
    # Design & Dev
    _entry("figma.com", "Figma", "Design"),
    _entry("adobe.com", "Adobe", "Design"),
    _entry("canva.com", "Canva", "Design"),
    _entry("sketch.com", "Sketch", "Design"),
    _entry("webflow.com", "Webflow", "Design"),
    _entry("github.com", "GitHub", "Developer Tools"),
    _entry("gitlab.com", "GitLab", "Developer Tools"),
    _entry("jetbrains.com", "JetBrains", "Developer Tools"),
    _entry("vercel.com", "Vercel", "Developer Tools"),
    _entry("digitalocean.com", "DigitalOcean", "Developer Tools"),
    _entry("cloudflare.com", "Cloudflare", "Developer Tools"),
    _entry("heroku.com", "Heroku", "Developer Tools"),
    _entry("postman.com", "Postman", "Developer Tools"),
    _entry("sentry.io", "Sentry", "Developer Tools"),
    _entry("datadoghq.com", "Datadog", "Developer Tools"),
    # Communication & Collaboration
    _entry("slack.com", "Slack", "Communication"),
    _entry("zoom.us", "Zoom", "Communication"),
    _entry("loom.com", "Loom", "Communication"),
    _entry("intercom.com", "Intercom", "Communication"),
    _entry("zendesk.com", "Zendesk", "Communication"),
    _entry("discord.com", "Discord Nitro", "Communication"),
    # AI Tools
    _entry("openai.com", "ChatGPT Plus", "AI Tools"),
    _entry("anthropic.com", "Claude Pro", "AI Tools"),
    _entry("midjourney.com", "Midjourney", "AI Tools"),
    _entry("grammarly.com", "Grammarly", "AI Tools"),
    # Marketing & CRM
    _entry("mailchimp.com", "Mailchimp", "Marketing"),
    _entry("hubspot.com", "HubSpot", "Marketing"),
    _entry("salesforce.com", "Salesforce", "Business"),
    _entry("typeform.com", "Typeform", "Business"),
    _entry("mixpanel.com", "Mixpanel", "Business"),
    # Website & Domain
    _entry("shopify.com", "Shopify", "Business"),
    _entry("squarespace.com", "Squarespace", "Business"),
    _entry("wix.com", "Wix", "Business"),
    _entry("godaddy.com", "GoDaddy", "Utilities"),
    _entry("namecheap.com", "Namecheap", "Utilities"),
    # Security & Privacy
    _entry("lastpass.com", "LastPass", "Security"),
    _entry("1password.com", "1Password", "Security"),
    _entry("dashlane.com", "Dashlane", "Security"),
    _entry("bitwarden.com", "Bitwarden", "Security"),
    _entry("nordvpn.com", "NordVPN", "Security"),
    _entry("expressvpn.com", "ExpressVPN", "Security"),
    # Learning
    _entry("duolingo.com", "Duolingo Plus", "Education"),
    _entry("coursera.org", "Coursera", "Education"),
    _entry("udemy.com", "Udemy", "Education"),
    _entry("skillshare.com", "Skillshare", "Education"),
    _entry("masterclass.com", "MasterClass", "Education"),
    _entry("linkedin.com", "LinkedIn Premium", "Education"),
    # Health & Wellness
    _entry("headspace.com", "Headspace", "Health & Fitness"),
    _entry("calm.com", "Calm", "Health & Fitness"),
    _entry("strava.com", "Strava", "Health & Fitness"),
    _entry("onepeloton.com", "Peloton", "Health & Fitness"),
    # Gaming
    _entry("xbox.com", "Xbox Game Pass", "Gaming"),
    _entry("playstation.com", "PlayStation Plus", "Gaming"),
    _entry("nintendo.com", "Nintendo Switch Online", "Gaming"),
    _entry("steampowered.com", "Steam", "Gaming"),
    _entry("epicgames.com", "Epic Games", "Gaming"),
    _entry("ea.com", "EA Play", "Gaming"),
    # Creator & Content
    _entry("patreon.com", "Patreon", "Entertainment"),
    _entry("substack.com", "Substack", "Entertainment"),
    _entry("medium.com", "Medium", "Entertainment"),
    # Food & Delivery
    _entry("doordash.com", "DashPass", "Food & Delivery"),
    _entry("ubereats.com", "Uber One", "Food & Delivery"),
    _entry("instacart.com", "Instacart+", "Food & Delivery"),
)


class PatternCatalog:
    """
    Ordered, read-only collection of PatternEntry.

    Built once at startup (see default_catalog) and passed into the
    extractors and the scan pipeline, so tests can hand in a small catalog
    of their own.
    """

    def __init__(self, entries: Iterable[PatternEntry]):
        self._entries: Tuple[PatternEntry, ...] = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> Tuple[PatternEntry, ...]:
        return self._entries

    def lookup(self, sender_header: str) -> Optional[PatternEntry]:
        """
        Find the catalog entry for a From header.

        Args:
            sender_header: Raw From header, e.g. "Netflix <info@mailer.netflix.com>"

        Returns:
            First PatternEntry whose fragment occurs in the header, or None
        """
        if not sender_header:
            return None

        sender_lower = sender_header.lower()
        for entry in self._entries:
            if entry.sender_fragment in sender_lower:
                return entry
        return None


@lru_cache(maxsize=1)
def default_catalog() -> PatternCatalog:
    """Process-wide catalog built from DEFAULT_PATTERNS."""
    return PatternCatalog(DEFAULT_PATTERNS)


def category_color(category_name: str) -> str:
    """Default colour for an auto-created category."""
    return CATEGORY_COLORS.get(category_name, DEFAULT_CATEGORY_COLOR)
