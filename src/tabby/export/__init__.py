"""Export layer — static output generation.

Pre-renders every page, listing, aggregate artifact and asset of a site
as files, through the same render service the live server uses.
"""

from tabby.export.static import ExportedFile, ExportResult, StaticExporter

__all__ = ["ExportResult", "ExportedFile", "StaticExporter"]
