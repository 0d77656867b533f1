"""
Static YAML content
"""
from .loader import ContentLoader, get_content_loader, get_content

__all__ = ["ContentLoader", "get_content_loader", "get_content"]
