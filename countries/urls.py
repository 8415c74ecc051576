from django.urls import path
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from . import views


def build_urlpatterns(config):
    """Country routes, each receiving `config` as a view keyword argument."""
    kwargs = {"config": config}
    urlpatterns = [
        # GET /status → Global system status summary
        path('status', views.get_status, kwargs, name='get_status'),
        # POST /countries/refresh → Fetch and refresh all country data
        path('countries/refresh', views.refresh_countries, kwargs, name='refresh_countries'),

        # GET /countries/image → Serve generated summary image
        path('countries/image', views.get_summary_image, kwargs, name='get_summary_image'),
        # GET /countries → List countries (optional filters)
        path('countries', views.list_countries, kwargs, name='list_countries'),
        path('countries/', views.list_countries, kwargs),

        # GET or DELETE /countries/<name> → Country detail or delete
        path('countries/<str:name>', views.country_detail, kwargs, name='country_detail'),

        path('health', views.health, name='health'),
    ]

    if not config.is_production:
        # OpenAPI schema and Swagger UI, outside production only
        urlpatterns += [
            path('swagger/schema', SpectacularAPIView.as_view(), name='schema'),
            path('swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
            path('swagger', RedirectView.as_view(pattern_name='swagger-ui', permanent=True)),
        ]

    return urlpatterns
