"""
Formzilla: PDF form filling driven by a vision language model.

Fillable fields are marked with correlation tokens, the rendered pages are
sent to a vision model together with the user's knowledge base, and the
model's suggestions are written back for interactive review.

Usage:
    from formzilla import get_settings, get_logger
    from formzilla.document import PdfFormSurface
    from formzilla.review import ReviewController
"""

from importlib.metadata import PackageNotFoundError, version

from formzilla.config import get_logger, get_settings


try:
    __version__ = version("formzilla")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    "get_settings",
    "get_logger",
]
