import logging
import os
import time

from django.http import FileResponse, HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from . import services, store
from .exceptions import InternalFailure, SourceUnavailable
from .models import Country
from .serializers import CountrySerializer

logger = logging.getLogger(__name__)


@extend_schema(request=None, responses={200: OpenApiTypes.OBJECT, 503: OpenApiTypes.OBJECT})
@api_view(['POST'])
def refresh_countries(request, config):
    """
    POST /countries/refresh
    Fetch countries and exchange rates, then upsert all records in one
    transaction. The request body is ignored.
    """
    start_time = time.time()
    logger.info("Refresh requested from %s", request.META.get("REMOTE_ADDR"))

    try:
        result = services.refresh_countries(config)
    except SourceUnavailable as e:
        return Response(
            {"error": "External data source unavailable", "details": str(e)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    except InternalFailure:
        return Response(
            {"error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    duration = round(time.time() - start_time, 2)

    return Response(
        {
            "message": "Refresh successful",
            "processed_count": result.processed_count,
            "last_synced_at": result.last_refreshed_at.isoformat(),
            "duration_seconds": duration,
            "skipped": result.skipped[:5],  # show only first few
        },
        status=status.HTTP_200_OK,
    )


def _query_param(request, key):
    # tolerate malformed clients sending keys like "?currency"
    for raw_key, value in request.query_params.items():
        if raw_key.lstrip("?") == key:
            return value
    return None


@extend_schema(
    parameters=[
        OpenApiParameter("region", OpenApiTypes.STR, description="Case-insensitive region match"),
        OpenApiParameter("currency", OpenApiTypes.STR, description="Case-insensitive currency code match"),
        OpenApiParameter("sort", OpenApiTypes.STR, enum=["gdp_desc", "gdp_asc"]),
    ],
    responses=CountrySerializer(many=True),
)
@api_view(['GET'])
def list_countries(request, config):
    """
    GET /countries
    Filters (case-insensitive exact match):
      - region, currency
    Sorting:
      - ?sort=gdp_desc or ?sort=gdp_asc; anything else leaves the order unspecified
    """
    region = _query_param(request, "region")
    currency = _query_param(request, "currency")
    sort = _query_param(request, "sort")

    countries = store.list_countries(region=region, currency=currency, sort=sort)
    logger.info("Listed %d countries (region=%s currency=%s sort=%s)", len(countries), region, currency, sort)
    return Response(CountrySerializer(countries, many=True).data)


@extend_schema(responses={200: CountrySerializer, 404: OpenApiTypes.OBJECT})
@api_view(['GET', 'DELETE'])
def country_detail(request, name, config):
    """
    GET /countries/:name  -> return 404 JSON if not found
    DELETE /countries/:name -> delete, return 200 or 404
    """
    if request.method == 'GET':
        try:
            country = store.get_country_by_name(name)
        except Country.DoesNotExist:
            return Response({"error": "Country not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(CountrySerializer(country).data)

    if not store.delete_country_by_name(name):
        return Response({"error": "Country not found"}, status=status.HTTP_404_NOT_FOUND)
    logger.info("Deleted country %s", name)
    return Response({"message": "Country deleted"})


@api_view(['GET'])
def get_status(request, config):
    """
    GET /status -> { total_count, last_synced_at }
    last_synced_at is the timestamp of the last committed refresh (or null)
    """
    total = store.count_countries()
    last = store.get_last_refreshed()
    return Response({
        "total_count": total,
        "last_synced_at": last.isoformat() if last else None,
    })


@api_view(['GET'])
def get_summary_image(request, config):
    """
    GET /countries/image
    Serve the summary image from the cache directory, or a JSON 404.
    """
    path = config.summary_image_path
    if not os.path.exists(path):
        return Response({"error": "Summary image not found"}, status=status.HTTP_404_NOT_FOUND)
    return FileResponse(open(path, 'rb'), content_type='image/png')


def health(request):
    return HttpResponse("Service is up and running", content_type="text/plain")
