"""
URL configuration for country_currency project.

The configuration value for the countries app is built once here, at
startup, and handed to every country route.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse

from countries.urls import build_urlpatterns
from countries.utils import Config

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include(build_urlpatterns(Config.from_settings()))),
]


def custom_404(request, exception):
    return JsonResponse({"error": "Endpoint not found, try /countries or /status"}, status=404)


def custom_500(request):
    return JsonResponse({"error": "Internal server error"}, status=500)


handler404 = "country_currency.urls.custom_404"
handler500 = "country_currency.urls.custom_500"
