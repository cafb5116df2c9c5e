"""Pipeline engine."""

from bulkimport.engine.pipeline import ImportPipeline, build_pipeline

__all__ = ["ImportPipeline", "build_pipeline"]
