"""
Core views - Prometheus metrics exposition.
"""
from django.http import HttpResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


class MetricsView(View):
    """
    Prometheus scrape endpoint.

    Exposed without authentication; restrict at the ingress.
    """

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
