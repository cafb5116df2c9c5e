"""Renderers for run artifacts."""

from bulkimport.renderers.validations import JsonFileRenderer

__all__ = ["JsonFileRenderer"]
