"""Catalog of authors, categories and books."""

from .manager import CatalogManager

__all__ = ["CatalogManager"]
