import logging

from django.http import HttpResponse

from .utils import Config

logger = logging.getLogger(__name__)


class CorsMiddleware:
    """
    Validates the request Origin against the allowed origins, sets the CORS
    headers and answers preflight requests directly.
    """

    allow_methods = "GET, POST, PUT, DELETE, OPTIONS"
    allow_headers = "Content-Type, Authorization"

    def __init__(self, get_response, config=None):
        self.get_response = get_response
        self.config = config or Config.from_settings()

    def is_allowed(self, origin):
        return any(allowed == "*" or allowed == origin for allowed in self.config.allowed_origins)

    def __call__(self, request):
        origin = request.headers.get("Origin")

        if origin and not self.is_allowed(origin):
            logger.warning("Blocked request from unauthorized origin %s to %s", origin, request.path)
            return HttpResponse("Unauthorized origin", status=403)

        if request.method == "OPTIONS":
            logger.debug("Handling CORS preflight for %s", request.path)
            response = HttpResponse(status=200)
        else:
            response = self.get_response(request)

        if origin:
            response["Access-Control-Allow-Origin"] = origin
        response["Access-Control-Allow-Methods"] = self.allow_methods
        response["Access-Control-Allow-Headers"] = self.allow_headers
        response["Access-Control-Allow-Credentials"] = "true"
        return response
