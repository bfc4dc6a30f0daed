"""
URL configuration for config project.

The AI crawler middleware runs ahead of every route below; `robots.txt` is
exempt so crawlers can still read the rules that exclude them.
"""
from django.urls import path

from config.views import home
from noai.views import robots_txt


urlpatterns = [
    path('robots.txt', robots_txt, name='robots_txt'),
    path('', home, name='home'),
]
