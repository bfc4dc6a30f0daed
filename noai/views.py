from django.http import HttpResponse
from django.views.decorators.http import require_safe

from noai.signatures import configured_signatures


@require_safe
def robots_txt(request):
    return HttpResponse(configured_signatures().robots_txt(), content_type="text/plain")
