import enum
import time

from django.conf import settings
from django.core.exceptions import DisallowedRedirect
from django.http import HttpResponseRedirect
from django.utils.encoding import iri_to_uri

from noai.exceptions import ConfigError
from noai.signatures import SignatureSet, configured_signatures

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})
DEFAULT_REDIRECT_STATUS = 301
DEFAULT_EXEMPT_PATHS = ("/robots.txt",)


class Decision(enum.Enum):
    PASS = "pass"
    INTERCEPT = "intercept"


class RedirectPolicy:
    """Decides whether a request comes from a scraper and builds the redirect.

    One policy owns a single redirect target for every matched request. It
    holds no mutable state, so one instance can serve concurrent requests.
    """

    __slots__ = ("_signatures", "_redirect_url", "_status", "_force_refetching", "_exempt_paths")

    def __init__(
        self,
        signatures,
        redirect_url: str,
        status: int = DEFAULT_REDIRECT_STATUS,
        force_refetching: bool = False,
        exempt_paths=(),
    ):
        if not isinstance(signatures, SignatureSet):
            signatures = SignatureSet(signatures)
        _validate_redirect_url(redirect_url)
        status = _validate_status(status)
        if isinstance(exempt_paths, str):
            exempt_paths = (exempt_paths,)

        self._signatures = signatures
        self._redirect_url = redirect_url
        self._status = status
        self._force_refetching = bool(force_refetching)
        self._exempt_paths = frozenset(exempt_paths)

    @property
    def signatures(self) -> SignatureSet:
        return self._signatures

    @property
    def redirect_url(self) -> str:
        return self._redirect_url

    @property
    def status(self) -> int:
        return self._status

    @property
    def force_refetching(self) -> bool:
        return self._force_refetching

    @property
    def exempt_paths(self) -> frozenset:
        return self._exempt_paths

    @classmethod
    def from_settings(cls, **overrides):
        """Build a policy from the NOAI_* settings; non-None overrides win."""
        options = {
            "redirect_url": getattr(settings, "NOAI_REDIRECT_URL", ""),
            "status": getattr(settings, "NOAI_REDIRECT_STATUS", DEFAULT_REDIRECT_STATUS),
            "force_refetching": getattr(settings, "NOAI_FORCE_REFETCHING", False),
            "exempt_paths": getattr(settings, "NOAI_EXEMPT_PATHS", DEFAULT_EXEMPT_PATHS),
        }
        options.update((key, value) for key, value in overrides.items() if value is not None)
        if "signatures" not in options:
            options["signatures"] = configured_signatures()
        return cls(**options)

    def classify(self, user_agent: str | None, path: str | None = None) -> Decision:
        if path is not None and path in self.exempt_paths:
            return Decision.PASS
        if self.signatures.matches(user_agent):
            return Decision.INTERCEPT
        return Decision.PASS

    def classify_request(self, request) -> Decision:
        return self.classify(request.META.get("HTTP_USER_AGENT", ""), request.path_info)

    def location(self) -> str:
        if not self.force_refetching:
            return self.redirect_url
        # ?=<ns> differs per request
        separator = "&" if "?" in self.redirect_url else "?"
        return f"{self.redirect_url}{separator}={time.time_ns()}"

    def redirect(self) -> HttpResponseRedirect:
        return HttpResponseRedirect(self.location(), status=self.status)

    def intercept(self, request):
        """Return the redirect for a scraper request, or None to let it through."""
        if self.classify_request(request) is Decision.INTERCEPT:
            return self.redirect()
        return None

    def __repr__(self) -> str:
        return f"<RedirectPolicy: {len(self.signatures)} signatures -> {self.redirect_url} ({self.status})>"


def _validate_redirect_url(redirect_url):
    if not isinstance(redirect_url, str) or not redirect_url.strip():
        raise ConfigError("A non-empty redirect URL is required (NOAI_REDIRECT_URL).")
    # Django's redirect type owns scheme and length checks.
    try:
        HttpResponseRedirect(redirect_url)
    except DisallowedRedirect as e:
        raise ConfigError(f"Invalid redirect URL {redirect_url!r}: {e}") from e
    # Location must be the configured target byte for byte.
    if iri_to_uri(redirect_url) != redirect_url:
        raise ConfigError(
            f"Redirect URL {redirect_url!r} must already be URI-encoded, e.g. {iri_to_uri(redirect_url)!r}."
        )


def _validate_status(status) -> int:
    # Environment-sourced settings arrive as strings.
    if isinstance(status, str) and status.strip().isdigit():
        status = int(status)
    if not isinstance(status, int) or isinstance(status, bool) or status not in REDIRECT_STATUS_CODES:
        allowed = ", ".join(str(code) for code in sorted(REDIRECT_STATUS_CODES))
        raise ConfigError(f"Redirect status must be one of {allowed}, got {status!r}.")
    return status
