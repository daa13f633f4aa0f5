"""Observability utilities for ticketly."""

from .tracing import init_tracing

__all__ = ["init_tracing"]
