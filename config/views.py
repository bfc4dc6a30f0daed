from django.http import HttpResponse


def home(request):
    return HttpResponse("Hello, human.", content_type="text/plain")
