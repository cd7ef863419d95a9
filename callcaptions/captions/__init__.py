"""Caption pipeline: local recognition and remote relay -> ordered captions."""
from .pipeline import CaptionPipeline

__all__ = ["CaptionPipeline"]
