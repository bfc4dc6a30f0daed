from functools import wraps

from asgiref.sync import iscoroutinefunction

from noai.interceptor import RedirectPolicy


def block_ai_bots(redirect_url=None, *, signatures=None, status=None, force_refetching=None):
    """Apply an AI crawler redirect to a single view.

    Arguments left as None fall back to the NOAI_* settings. The policy is
    built when the view is decorated, so misconfiguration fails at import.

        @block_ai_bots("https://example.com/slow", status=307)
        def article(request, slug):
            ...
    """
    policy = RedirectPolicy.from_settings(
        signatures=signatures,
        redirect_url=redirect_url,
        status=status,
        force_refetching=force_refetching,
        exempt_paths=(),
    )

    def decorator(view_func):
        if iscoroutinefunction(view_func):

            async def _view_wrapper(request, *args, **kwargs):
                response = policy.intercept(request)
                if response is None:
                    response = await view_func(request, *args, **kwargs)
                return response

        else:

            def _view_wrapper(request, *args, **kwargs):
                response = policy.intercept(request)
                if response is None:
                    response = view_func(request, *args, **kwargs)
                return response

        _view_wrapper.redirect_policy = policy
        return wraps(view_func)(_view_wrapper)

    return decorator
