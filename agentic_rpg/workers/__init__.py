"""Background image job pipeline"""

from .image_pipeline import (
    ImageGenerator,
    ImageJobPipeline,
    MockImageGenerator,
    fallback_image_url,
    sanitize_prompt,
)

__all__ = [
    "ImageGenerator",
    "ImageJobPipeline",
    "MockImageGenerator",
    "fallback_image_url",
    "sanitize_prompt",
]
