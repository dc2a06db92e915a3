"""
Templating - parse, render, and merge generated documents.
"""

from groundwork.core.services.templating.catalog import Catalog, CatalogStep, load_catalog
from groundwork.core.services.templating.merger import MergeResult, merge
from groundwork.core.services.templating.parser import Template, load_template, parse_template
from groundwork.core.services.templating.regions import parse_regions
from groundwork.core.services.templating.renderer import RenderResult, render

__all__ = [
    "Catalog",
    "CatalogStep",
    "MergeResult",
    "RenderResult",
    "Template",
    "load_catalog",
    "load_template",
    "merge",
    "parse_regions",
    "parse_template",
    "render",
]
