"""Flow payload transformation, export documents and guidance conversion."""

from .export import EXPORT_VERSION, ExportFormatError, FlowExport
from .guidance import Guidance, GuidanceWriter, build_guidance_content, slugify, validate_guidance
from .transform import PreparedFlow, prepare_flow, truncate_label

__all__ = [
    "EXPORT_VERSION",
    "ExportFormatError",
    "FlowExport",
    "Guidance",
    "GuidanceWriter",
    "PreparedFlow",
    "build_guidance_content",
    "prepare_flow",
    "slugify",
    "truncate_label",
    "validate_guidance",
]
