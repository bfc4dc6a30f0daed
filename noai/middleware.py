import logging

from asgiref.sync import iscoroutinefunction, markcoroutinefunction

from noai.interceptor import RedirectPolicy

logger = logging.getLogger(__name__)


class BlockAIBotsMiddleware:
    """Redirect requests from known AI/LLM crawlers, pass everything else through.

    Installed through ``settings.MIDDLEWARE`` the policy comes from the
    NOAI_* settings. It can also wrap any ``request -> response`` callable
    directly with an explicit :class:`RedirectPolicy`.
    """

    sync_capable = True
    async_capable = True

    def __init__(self, get_response, policy=None):
        self.get_response = get_response
        if policy is None:
            policy = RedirectPolicy.from_settings()
            logger.info(
                "Redirecting %d AI crawler signatures to %s (HTTP %d)",
                len(policy.signatures), policy.redirect_url, policy.status,
            )
        self.policy = policy
        if iscoroutinefunction(self.get_response):
            markcoroutinefunction(self)

    def __call__(self, request):
        if iscoroutinefunction(self):
            return self.__acall__(request)
        response = self.policy.intercept(request)
        if response is None:
            response = self.get_response(request)
        return response

    async def __acall__(self, request):
        response = self.policy.intercept(request)
        if response is None:
            response = await self.get_response(request)
        return response
