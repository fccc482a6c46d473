"""Lifecycle events, observer base classes and the metrics collector."""

from .base import BaseObserver, ProcessingEvent, ProcessorObserver
from .metrics import MetricsObserver

__all__ = ["ProcessingEvent", "ProcessorObserver", "BaseObserver", "MetricsObserver"]
