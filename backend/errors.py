"""Error taxonomy for the capture pipeline."""

from typing import Optional


class PanelSnapError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PanelSnapError):
    """Invalid job configuration. Fatal at startup."""


class NavigationError(PanelSnapError):
    """The dashboard could not be opened."""


class CannotOpenPageError(NavigationError):
    def __init__(self, status: Optional[int], url: str):
        self.status = status
        self.url = url
        super().__init__(f"Unable to open page: {url} ({status})")


class CaptureError(PanelSnapError):
    """The browser failed to render or clip the page."""


class EncodingError(PanelSnapError):
    """Post-processing or bitmap packing failed."""


class ResourceError(PanelSnapError):
    """Browser launch or file write failed."""
