"""Render layer — records and listings to HTML, plus feeds and indexes.

The same RenderService backs the live server and the static export, so
both produce identical bytes for the same URL.
"""

from tabby.render.service import ARTIFACTS, Artifact, RenderService

__all__ = ["ARTIFACTS", "Artifact", "RenderService"]
