"""Prometheus metrics module."""

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest


def render_metrics() -> tuple[bytes, str]:
    """Render the default registry in Prometheus text format.

    Returns:
        (payload, content_type) for whatever exposition endpoint the host
        process provides.
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
