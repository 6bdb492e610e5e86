"""
Observability blueprint: Prometheus /metrics and a /health probe.

/metrics should be restricted to the internal network or the monitoring
system; /health is public and used by load balancers.
"""
from flask import Blueprint, Response, request, g, jsonify, current_app
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import time
import os

from app.database import get_session

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=registry if not MULTIPROCESS_MODE else None
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=registry if not MULTIPROCESS_MODE else None,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=registry if not MULTIPROCESS_MODE else None
)


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that time and count every request."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        start = g.pop('_prometheus_metrics_start_time', None)
        if start is None:
            return response

        # Endpoint name (e.g. 'discounts.validate_code'), not the raw path
        endpoint = request.endpoint or 'unknown'
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(time.time() - start)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            http_status=response.status_code
        ).inc()
        http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus-formatted metrics (not authenticated; restrict by network)."""
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)


@metrics_bp.route('/health')
def health():
    """Liveness/readiness: database reachable, cache state reported."""
    from app.services.cache_service import get_cache

    checks = {'database': 'ok', 'cache': 'disabled'}
    healthy = True

    try:
        get_session().execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        current_app.logger.error(f"[HEALTH] Database check failed: {e}")
        checks['database'] = 'error'
        healthy = False

    try:
        if get_cache().is_available():
            checks['cache'] = 'ok'
    except RuntimeError:
        pass

    body = {
        'success': healthy,
        'message': 'healthy' if healthy else 'unhealthy',
        'data': checks,
    }
    return jsonify(body), 200 if healthy else 503
