import os
from io import StringIO
from tempfile import TemporaryDirectory
from unittest.mock import patch

from asgiref.sync import async_to_sync
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.http import HttpResponse
from django.test import AsyncRequestFactory, RequestFactory, SimpleTestCase, override_settings

from noai.decorators import block_ai_bots
from noai.exceptions import ConfigError
from noai.interceptor import REDIRECT_STATUS_CODES, Decision, RedirectPolicy
from noai.middleware import BlockAIBotsMiddleware
from noai.signatures import AI_AGENTS, SignatureSet, configured_signatures

SLOW_URL = "https://example.com/slow"
HUMAN_UA = "Mozilla/5.0 (Windows NT 10.0)"
GPTBOT_UA = "Mozilla/5.0 (compatible; GPTBot/1.0)"


class SpyHandler:
    """Downstream handler that counts calls and returns a fixed response."""

    def __init__(self):
        self.calls = 0
        self.response = HttpResponse("downstream body", status=200, headers={"X-Downstream": "yes"})

    def __call__(self, request):
        self.calls += 1
        return self.response


class SignatureSetTests(SimpleTestCase):
    def setUp(self):
        self.signatures = SignatureSet(AI_AGENTS)

    def test_every_signature_matches_exactly_and_embedded(self):
        for sig in AI_AGENTS:
            with self.subTest(signature=sig):
                self.assertTrue(self.signatures.matches(sig))
                self.assertTrue(self.signatures.matches(f"prefix {sig} suffix"))

    def test_matching_ignores_ascii_case(self):
        for sig in AI_AGENTS:
            with self.subTest(signature=sig):
                self.assertTrue(self.signatures.matches(sig.upper()))
                self.assertTrue(self.signatures.matches(sig.lower()))

    def test_no_unicode_case_folding(self):
        signatures = SignatureSet(["Kangaroo Bot"])
        # U+212A KELVIN SIGN lowercases to "k" outside ASCII
        self.assertFalse(signatures.matches("\u212aangaroo Bot"))
        self.assertTrue(signatures.matches("kangaroo bot"))

    def test_empty_or_absent_header_does_not_match(self):
        self.assertFalse(self.signatures.matches(""))
        self.assertFalse(self.signatures.matches(None))

    def test_regular_browsers_do_not_match(self):
        self.assertFalse(self.signatures.matches(HUMAN_UA))
        self.assertFalse(self.signatures.matches(
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
        ))

    def test_signatures_are_literal_not_regex(self):
        signatures = SignatureSet(["scoop.it"])
        self.assertTrue(signatures.matches("scoop.it crawler"))
        self.assertFalse(signatures.matches("scoopXit crawler"))

    def test_duplicates_are_harmless(self):
        signatures = SignatureSet(["GPTBot", "CCBot", "GPTBot"])
        self.assertEqual(signatures.signatures, ("GPTBot", "CCBot"))
        self.assertEqual(len(signatures), 2)
        self.assertTrue(signatures.matches(GPTBOT_UA))

    def test_membership_is_case_insensitive(self):
        self.assertIn("gptbot", self.signatures)
        self.assertNotIn("Firefox", self.signatures)
        self.assertNotIn(None, self.signatures)

    def test_empty_sequence_is_a_config_error(self):
        with self.assertRaises(ConfigError):
            SignatureSet([])

    def test_invalid_entries_are_config_errors(self):
        for bad in ("GPTBot", ["GPTBot", ""], ["GPTBot", None], [b"GPTBot"]):
            with self.subTest(signatures=bad):
                with self.assertRaises(ConfigError):
                    SignatureSet(bad)

    def test_config_error_is_improperly_configured(self):
        self.assertTrue(issubclass(ConfigError, ImproperlyConfigured))

    def test_robots_txt_disallows_every_signature_in_order(self):
        body = SignatureSet(["GPTBot", "CCBot"]).robots_txt()
        self.assertEqual(body, "User-Agent: GPTBot\nDisallow: /\nUser-Agent: CCBot\nDisallow: /\n")
        self.assertEqual(self.signatures.robots_txt().count("Disallow: /\n"), len(self.signatures))


class RedirectPolicyTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.policy = RedirectPolicy(SignatureSet(["GPTBot", "CCBot"]), SLOW_URL)

    def test_classify(self):
        self.assertIs(self.policy.classify(GPTBOT_UA), Decision.INTERCEPT)
        self.assertIs(self.policy.classify(HUMAN_UA), Decision.PASS)
        self.assertIs(self.policy.classify(""), Decision.PASS)
        self.assertIs(self.policy.classify(None), Decision.PASS)

    def test_classify_request_without_user_agent_passes(self):
        request = self.factory.get("/")
        self.assertNotIn("HTTP_USER_AGENT", request.META)
        self.assertIs(self.policy.classify_request(request), Decision.PASS)

    def test_accepts_plain_sequence_of_signatures(self):
        policy = RedirectPolicy(["GPTBot"], SLOW_URL)
        self.assertIsInstance(policy.signatures, SignatureSet)

    def test_default_redirect_is_permanent_with_verbatim_location(self):
        response = self.policy.redirect()
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response["Location"], SLOW_URL)
        self.assertEqual(response.content, b"")

    def test_status_is_configurable(self):
        for status in sorted(REDIRECT_STATUS_CODES):
            with self.subTest(status=status):
                policy = RedirectPolicy(["GPTBot"], SLOW_URL, status=status)
                self.assertEqual(policy.redirect().status_code, status)

    def test_non_redirect_status_is_a_config_error(self):
        for status in (200, 304, 404, "moved", "", True, None):
            with self.subTest(status=status):
                with self.assertRaises(ConfigError):
                    RedirectPolicy(["GPTBot"], SLOW_URL, status=status)

    def test_numeric_string_status_is_accepted(self):
        policy = RedirectPolicy(["GPTBot"], SLOW_URL, status="307")
        self.assertEqual(policy.status, 307)
        self.assertEqual(policy.redirect().status_code, 307)

    def test_unencoded_redirect_target_is_a_config_error(self):
        for url in (f"{SLOW_URL}?x=a|b", f"{SLOW_URL}/a b", f"{SLOW_URL}/\u00e9"):
            with self.subTest(url=url):
                with self.assertRaises(ConfigError):
                    RedirectPolicy(["GPTBot"], url)

    def test_encoded_redirect_target_is_kept_verbatim(self):
        for url in (f"{SLOW_URL}?x=a%7Cb", f"{SLOW_URL}/a%20b", f"{SLOW_URL}/%C3%A9"):
            with self.subTest(url=url):
                response = RedirectPolicy(["GPTBot"], url).redirect()
                self.assertEqual(response["Location"], url)

    def test_configuration_is_read_only(self):
        for attr in ("signatures", "redirect_url", "status", "force_refetching", "exempt_paths"):
            with self.subTest(attr=attr):
                with self.assertRaises(AttributeError):
                    setattr(self.policy, attr, None)
        self.assertEqual(self.policy.redirect_url, SLOW_URL)

    def test_empty_signatures_is_a_config_error(self):
        with self.assertRaises(ConfigError):
            RedirectPolicy([], SLOW_URL)

    def test_empty_redirect_target_is_a_config_error(self):
        for url in ("", "   ", None):
            with self.subTest(url=url):
                with self.assertRaises(ConfigError):
                    RedirectPolicy(["GPTBot"], url)

    def test_unsafe_redirect_scheme_is_a_config_error(self):
        with self.assertRaises(ConfigError):
            RedirectPolicy(["GPTBot"], "javascript:alert(1)")

    def test_relative_redirect_target_is_accepted(self):
        response = RedirectPolicy(["GPTBot"], "/slow").redirect()
        self.assertEqual(response["Location"], "/slow")

    @patch("noai.interceptor.time.time_ns", side_effect=[111, 222])
    def test_force_refetching_appends_changing_query(self, mock_time_ns):
        policy = RedirectPolicy(["GPTBot"], SLOW_URL, force_refetching=True)
        self.assertEqual(policy.redirect()["Location"], f"{SLOW_URL}?=111")
        self.assertEqual(policy.redirect()["Location"], f"{SLOW_URL}?=222")

    @patch("noai.interceptor.time.time_ns", return_value=5)
    def test_force_refetching_extends_existing_query(self, mock_time_ns):
        policy = RedirectPolicy(["GPTBot"], f"{SLOW_URL}?from=bot", force_refetching=True)
        self.assertEqual(policy.location(), f"{SLOW_URL}?from=bot&=5")

    def test_exempt_paths_always_pass(self):
        policy = RedirectPolicy(["GPTBot"], SLOW_URL, exempt_paths=["/robots.txt"])
        request = self.factory.get("/robots.txt", HTTP_USER_AGENT=GPTBOT_UA)
        self.assertIs(policy.classify_request(request), Decision.PASS)
        self.assertIsNone(policy.intercept(request))
        request = self.factory.get("/articles/", HTTP_USER_AGENT=GPTBOT_UA)
        self.assertIs(policy.classify_request(request), Decision.INTERCEPT)

    @override_settings(
        NOAI_SIGNATURES=["CCBot"],
        NOAI_REDIRECT_URL=SLOW_URL,
        NOAI_REDIRECT_STATUS=307,
        NOAI_FORCE_REFETCHING=False,
        NOAI_EXEMPT_PATHS=("/robots.txt",),
    )
    def test_from_settings(self):
        policy = RedirectPolicy.from_settings()
        self.assertEqual(policy.signatures.signatures, ("CCBot",))
        self.assertEqual(policy.redirect_url, SLOW_URL)
        self.assertEqual(policy.status, 307)
        self.assertEqual(policy.exempt_paths, frozenset({"/robots.txt"}))

    @override_settings(NOAI_REDIRECT_URL=SLOW_URL, NOAI_REDIRECT_STATUS=301)
    def test_from_settings_overrides_win(self):
        policy = RedirectPolicy.from_settings(status=302, redirect_url=None)
        self.assertEqual(policy.status, 302)
        self.assertEqual(policy.redirect_url, SLOW_URL)


class BlockAIBotsMiddlewareTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.downstream = SpyHandler()
        self.policy = RedirectPolicy(SignatureSet(["GPTBot", "CCBot"]), SLOW_URL)
        self.middleware = BlockAIBotsMiddleware(self.downstream, policy=self.policy)

    def test_scraper_is_redirected_without_calling_next(self):
        request = self.factory.get("/articles/1/", HTTP_USER_AGENT=GPTBOT_UA)
        response = self.middleware(request)
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response["Location"], SLOW_URL)
        self.assertEqual(self.downstream.calls, 0)

    def test_human_gets_downstream_response_verbatim(self):
        request = self.factory.get("/articles/1/", HTTP_USER_AGENT=HUMAN_UA)
        response = self.middleware(request)
        self.assertIs(response, self.downstream.response)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["X-Downstream"], "yes")
        self.assertEqual(response.content, b"downstream body")
        self.assertFalse(response.has_header("Location"))
        self.assertEqual(self.downstream.calls, 1)

    def test_missing_user_agent_passes(self):
        response = self.middleware(self.factory.get("/"))
        self.assertIs(response, self.downstream.response)
        self.assertEqual(self.downstream.calls, 1)

    def test_empty_user_agent_passes(self):
        response = self.middleware(self.factory.get("/", HTTP_USER_AGENT=""))
        self.assertIs(response, self.downstream.response)

    def test_downstream_errors_propagate(self):
        def broken(request):
            raise ValueError("boom")

        middleware = BlockAIBotsMiddleware(broken, policy=self.policy)
        with self.assertRaisesMessage(ValueError, "boom"):
            middleware(self.factory.get("/", HTTP_USER_AGENT=HUMAN_UA))

    def test_chained_instances_are_independent(self):
        inner = BlockAIBotsMiddleware(self.downstream, policy=RedirectPolicy(["CCBot"], "/inner"))
        outer = BlockAIBotsMiddleware(inner, policy=RedirectPolicy(["GPTBot"], "/outer", status=302))

        response = outer(self.factory.get("/", HTTP_USER_AGENT="CCBot/2.0"))
        self.assertEqual(response["Location"], "/inner")
        self.assertEqual(response.status_code, 301)

        response = outer(self.factory.get("/", HTTP_USER_AGENT=GPTBOT_UA))
        self.assertEqual(response["Location"], "/outer")
        self.assertEqual(response.status_code, 302)

        self.assertIs(outer(self.factory.get("/", HTTP_USER_AGENT=HUMAN_UA)), self.downstream.response)
        self.assertEqual(self.downstream.calls, 1)

    def test_async_downstream(self):
        factory = AsyncRequestFactory()
        calls = []
        downstream_response = HttpResponse("async body")

        async def downstream(request):
            calls.append(request)
            return downstream_response

        middleware = BlockAIBotsMiddleware(downstream, policy=self.policy)

        response = async_to_sync(middleware)(factory.get("/", headers={"user-agent": GPTBOT_UA}))
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response["Location"], SLOW_URL)
        self.assertEqual(calls, [])

        response = async_to_sync(middleware)(factory.get("/", headers={"user-agent": HUMAN_UA}))
        self.assertIs(response, downstream_response)
        self.assertEqual(len(calls), 1)

    @override_settings(NOAI_SIGNATURES=["GPTBot"], NOAI_REDIRECT_URL=SLOW_URL, NOAI_REDIRECT_STATUS=302)
    def test_policy_from_settings_is_logged(self):
        with self.assertLogs("noai.middleware", level="INFO") as logs:
            middleware = BlockAIBotsMiddleware(self.downstream)
        self.assertEqual(middleware.policy.status, 302)
        self.assertIn(SLOW_URL, logs.output[0])

    @override_settings(NOAI_REDIRECT_URL="")
    def test_missing_redirect_url_fails_at_construction(self):
        with self.assertRaises(ConfigError):
            BlockAIBotsMiddleware(self.downstream)

    @override_settings(NOAI_REDIRECT_URL=SLOW_URL, NOAI_REDIRECT_STATUS="moved")
    def test_bad_status_setting_fails_at_construction(self):
        with self.assertRaises(ConfigError):
            BlockAIBotsMiddleware(self.downstream)

    @override_settings(NOAI_REDIRECT_URL=SLOW_URL, NOAI_REDIRECT_STATUS="302")
    def test_status_setting_from_environment_string(self):
        middleware = BlockAIBotsMiddleware(self.downstream)
        response = middleware(self.factory.get("/", HTTP_USER_AGENT=GPTBOT_UA))
        self.assertEqual(response.status_code, 302)

    @override_settings(NOAI_SIGNATURES=[], NOAI_REDIRECT_URL=SLOW_URL)
    def test_empty_signature_setting_fails_at_construction(self):
        with self.assertRaises(ConfigError):
            BlockAIBotsMiddleware(self.downstream)


@override_settings(
    NOAI_SIGNATURES=["GPTBot", "CCBot"],
    NOAI_REDIRECT_URL=SLOW_URL,
    NOAI_REDIRECT_STATUS=301,
    NOAI_FORCE_REFETCHING=False,
    NOAI_EXEMPT_PATHS=("/robots.txt",),
)
class InstalledMiddlewareTests(SimpleTestCase):
    def test_scraper_is_redirected(self):
        response = self.client.get("/", HTTP_USER_AGENT=GPTBOT_UA)
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response["Location"], SLOW_URL)

    def test_human_reaches_the_view(self):
        response = self.client.get("/", HTTP_USER_AGENT=HUMAN_UA)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"Hello, human.")

    def test_scraper_can_read_robots_txt(self):
        response = self.client.get("/robots.txt", HTTP_USER_AGENT=GPTBOT_UA)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/plain")
        self.assertEqual(
            response.content.decode(),
            "User-Agent: GPTBot\nDisallow: /\nUser-Agent: CCBot\nDisallow: /\n",
        )

    def test_robots_txt_rejects_post(self):
        response = self.client.post("/robots.txt", HTTP_USER_AGENT=HUMAN_UA)
        self.assertEqual(response.status_code, 405)


@override_settings(NOAI_SIGNATURES=["GPTBot"], NOAI_REDIRECT_URL=SLOW_URL)
class BlockAIBotsDecoratorTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_sync_view(self):
        calls = []

        @block_ai_bots("/elsewhere", status=307)
        def article(request, slug):
            calls.append(slug)
            return HttpResponse(slug)

        response = article(self.factory.get("/a/", HTTP_USER_AGENT=GPTBOT_UA), slug="a")
        self.assertEqual(response.status_code, 307)
        self.assertEqual(response["Location"], "/elsewhere")
        self.assertEqual(calls, [])

        response = article(self.factory.get("/a/", HTTP_USER_AGENT=HUMAN_UA), slug="a")
        self.assertEqual(response.content, b"a")
        self.assertEqual(calls, ["a"])
        self.assertEqual(article.__name__, "article")

    def test_settings_fallback(self):
        @block_ai_bots()
        def view(request):
            return HttpResponse("ok")

        self.assertEqual(view.redirect_policy.redirect_url, SLOW_URL)
        response = view(self.factory.get("/robots.txt", HTTP_USER_AGENT=GPTBOT_UA))
        self.assertEqual(response["Location"], SLOW_URL)

    def test_async_view(self):
        factory = AsyncRequestFactory()

        @block_ai_bots(signatures=["CCBot"])
        async def feed(request):
            return HttpResponse("feed")

        response = async_to_sync(feed)(factory.get("/", headers={"user-agent": "CCBot/2.0"}))
        self.assertEqual(response.status_code, 301)
        self.assertEqual(response["Location"], SLOW_URL)
        response = async_to_sync(feed)(factory.get("/", headers={"user-agent": GPTBOT_UA}))
        self.assertEqual(response.content, b"feed")

    def test_bad_configuration_fails_when_decorating(self):
        with self.assertRaises(ConfigError):
            block_ai_bots("javascript:alert(1)")


@override_settings(NOAI_SIGNATURES=["GPTBot", "CCBot"])
class CommandTests(SimpleTestCase):
    def test_write_robots_txt_to_stdout(self):
        out = StringIO()
        call_command("write_robots_txt", stdout=out)
        self.assertEqual(out.getvalue(), "User-Agent: GPTBot\nDisallow: /\nUser-Agent: CCBot\nDisallow: /\n")

    def test_write_robots_txt_to_file(self):
        out = StringIO()
        with TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "robots.txt")
            call_command("write_robots_txt", "--output", path, stdout=out)
            with open(path, encoding="utf-8") as f:
                self.assertEqual(f.read().count("Disallow: /"), 2)
        self.assertIn("Wrote 2 user-agent rules", out.getvalue())

    def test_classify_user_agent(self):
        out = StringIO()
        call_command("classify_user_agent", GPTBOT_UA, "curl/8.0", stdout=out)
        output = out.getvalue()
        self.assertIn(f"intercept\t{GPTBOT_UA}", output)
        self.assertIn("pass\tcurl/8.0", output)

    @override_settings(NOAI_REDIRECT_URL="")
    def test_classify_user_agent_requires_valid_configuration(self):
        with self.assertRaises(ConfigError):
            call_command("classify_user_agent", GPTBOT_UA, stdout=StringIO())


class ConfiguredSignaturesTests(SimpleTestCase):
    def test_built_once(self):
        self.assertIs(configured_signatures(), configured_signatures())

    def test_defaults_to_ai_agents(self):
        self.assertEqual(configured_signatures().signatures, SignatureSet(AI_AGENTS).signatures)

    def test_rebuilt_when_setting_changes(self):
        before = configured_signatures()
        with self.settings(NOAI_SIGNATURES=["PerplexityBot"]):
            self.assertEqual(configured_signatures().signatures, ("PerplexityBot",))
            self.assertTrue(RedirectPolicy.from_settings().signatures.matches("PerplexityBot/1.0"))
        self.assertEqual(configured_signatures().signatures, before.signatures)
