"""Resfilter - build resource copier and template filter.

Copies build resources into an output tree, optionally rendering them as
Jinja2 templates against a stack of property scopes.
"""

__version__ = "0.1.0"

# Configure logging for library use
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .core.models import CopyMode, Delimiters, FilterMode
from .pipeline.processor import PathPreconditionError, ResourcesProcessor
from .rendering.engine import RenderError, TemplateRenderer, UnresolvedPlaceholderError
from .settings import FilterSettings

__all__ = [
    "CopyMode",
    "Delimiters",
    "FilterMode",
    "FilterSettings",
    "PathPreconditionError",
    "RenderError",
    "ResourcesProcessor",
    "TemplateRenderer",
    "UnresolvedPlaceholderError",
]
