"""Content collaborator and the transforms applied before generation."""

from .ghost import ContentError, ContentSource, GhostClient, TagSummary
from .images import collect_image_urls, rewrite_feature_image, rewrite_html
from .staging import StagedSite, stage_site

__all__ = [
    "ContentError",
    "ContentSource",
    "GhostClient",
    "StagedSite",
    "TagSummary",
    "collect_image_urls",
    "rewrite_feature_image",
    "rewrite_html",
    "stage_site",
]
