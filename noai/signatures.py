import functools
import re

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

from noai.exceptions import ConfigError

# Known AI/LLM crawler user-agent patterns
AI_AGENTS = (
    "AI2Bot",
    "Ai2Bot-Dolma",
    "AdsBot-Google2",
    "Amazonbot",
    "anthropic-ai",
    "Applebot",
    "Applebot-Extended",
    "ArcMobile",
    "AwarioRssBot",
    "AwarioSmartBot",
    "Bytespider",
    "CCBot",
    "ChatGPT-User",
    "Claude-Web",
    "ClaudeBot",
    "cohere-ai",
    "DataForSeoBot",
    "Diffbot",
    "DuckAssistBot",
    "FacebookBot",
    "FriendlyCrawler",
    "Google-Extended",
    "Googlebot-Image",
    "GoogleOther",
    "GoogleOther-Image",
    "GoogleOther-Video",
    "GPTBot",
    "iaskspider/2.0",
    "ICC-Crawler",
    "ImagesiftBot",
    "img2dataset",
    "ISSCyberRiskCrawler",
    "Kangaroo Bot",
    "Meta-ExternalAgent",
    "Meta-ExternalFetcher",
    "OAI-SearchBot",
    "magpie-crawler",
    "Meltwater",
    "msnbot-media",
    "omgili",
    "omgilibot",
    "PanguBot",
    "peer39_crawler",
    "PerplexityBot",
    "PetalBot",
    "PiplBot",
    "Scrapy",
    "Seekr",
    "Sidetrade indexer bot",
    "scoop.it",
    "Timpibot",
    "VelenPublicWebCrawler",
    "Webzio-Extended",
    "yandex",
    "YouBot",
)


class SignatureSet:
    """Immutable collection of user-agent substrings that identify scrapers.

    Matching is substring based and ignores ASCII case only, so
    ``"Mozilla/5.0 (compatible; gptbot/1.0)"`` matches ``"GPTBot"``.
    """

    __slots__ = ("_signatures", "_folded", "_pattern", "_robots_txt")

    def __init__(self, signatures):
        if isinstance(signatures, (str, bytes)):
            raise ConfigError("Bot signatures must be a sequence of strings, not a single string.")

        signatures = tuple(signatures)
        for sig in signatures:
            if not isinstance(sig, str) or not sig:
                raise ConfigError(f"Invalid bot signature: {sig!r}")
        if not signatures:
            raise ConfigError("At least one bot signature is required.")

        self._signatures = tuple(dict.fromkeys(signatures))
        self._folded = frozenset(_ascii_lower(sig) for sig in self._signatures)
        self._pattern = re.compile(
            "|".join(re.escape(sig) for sig in self._signatures),
            re.IGNORECASE | re.ASCII,
        )
        self._robots_txt = None

    @property
    def signatures(self) -> tuple[str, ...]:
        return self._signatures

    def matches(self, header_value: str | None) -> bool:
        """True if ``header_value`` contains any signature."""
        if not header_value:
            return False
        return self._pattern.search(header_value) is not None

    def robots_txt(self) -> str:
        """robots.txt body disallowing every signature from the whole site."""
        if self._robots_txt is None:
            self._robots_txt = "".join(
                f"User-Agent: {sig}\nDisallow: /\n" for sig in self._signatures
            )
        return self._robots_txt

    def __contains__(self, signature) -> bool:
        return isinstance(signature, str) and _ascii_lower(signature) in self._folded

    def __iter__(self):
        return iter(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)

    def __repr__(self) -> str:
        return f"<SignatureSet: {len(self)} signatures>"


_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")


def _ascii_lower(value: str) -> str:
    return value.translate(_ASCII_LOWER)


@functools.lru_cache(maxsize=None)
def configured_signatures() -> SignatureSet:
    """The SignatureSet for settings.NOAI_SIGNATURES, built once per process."""
    return SignatureSet(getattr(settings, "NOAI_SIGNATURES", AI_AGENTS))


@receiver(setting_changed)
def reset_configured_signatures(*, setting, **kwargs):
    if setting == "NOAI_SIGNATURES":
        configured_signatures.cache_clear()
