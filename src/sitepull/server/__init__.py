"""
sitepull export endpoint (Flask).
"""

from sitepull.server.app import SiteExporter, create_app

__all__ = ["SiteExporter", "create_app"]
