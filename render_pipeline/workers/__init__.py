"""Worker-side message handlers."""

from render_pipeline.workers.render_worker import RenderPipeline

__all__ = ["RenderPipeline"]
