"""Task handlers keyed by task type."""

from taskqueue.handlers.base import BaseHandler
from taskqueue.handlers.compute import ComputeHandler
from taskqueue.handlers.data_processing import DataProcessingHandler
from taskqueue.handlers.default import DefaultHandler
from taskqueue.handlers.email import EmailHandler

__all__ = [
    "BaseHandler",
    "ComputeHandler",
    "DataProcessingHandler",
    "DefaultHandler",
    "EmailHandler",
]
