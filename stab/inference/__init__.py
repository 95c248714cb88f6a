"""
stab.inference — Workspace inference: summarise what is open, ask the
categorization service how it clusters, validate the answer against
what is still open, and consolidate.
"""

from stab.inference.apply import PALETTE, apply_workspaces
from stab.inference.context import InferenceContext, ResourceSummary, build_context
from stab.inference.parse import extract_json_object, parse_workspaces, validate
from stab.inference.pipeline import PipelineState, WorkspaceInference
from stab.inference.prompt import WORKSPACE_SYSTEM, build_prompt
from stab.inference.providers import PROVIDERS, build_categorizer

__all__ = [
    "PALETTE",
    "apply_workspaces",
    "InferenceContext",
    "ResourceSummary",
    "build_context",
    "extract_json_object",
    "parse_workspaces",
    "validate",
    "PipelineState",
    "WorkspaceInference",
    "WORKSPACE_SYSTEM",
    "build_prompt",
    "PROVIDERS",
    "build_categorizer",
]
