"""
stab.inference.prompt — Prompt text for the categorization service.

The service is asked for strict JSON, but its answer is only loosely
trusted; see ``stab.inference.parse``.
"""

from __future__ import annotations

from stab.inference.context import InferenceContext

WORKSPACE_SYSTEM = """You organise open browser tabs into workspaces: groups of tabs a person is using together for one task.

Return ONLY a JSON object, no prose:
{
  "workspaces": [
    {"name": "short task name", "tabIds": ["id", "id"]}
  ]
}

Rules:
- Every workspace has at least 2 tabs.
- A tab belongs to at most one workspace.
- Leave unrelated tabs out.
- Names are 1-4 words."""

WORKSPACE_USER_TEMPLATE = """Open tabs (id | title | domain | minutes focused | visits):
{resources}

Tabs often used together (id pair | switches | average seconds before switching):
{relationships}

Group these tabs into workspaces."""


def build_prompt(context: InferenceContext) -> str:
    """Render *context* as the user prompt."""
    resource_lines = "\n".join(
        f"- {r.id} | {_clean(r.title)} | {r.host or '-'} | {r.minutes} | {r.visits}"
        for r in context.resources
    )
    relationship_lines = "\n".join(
        f"- {e.a} + {e.b} | {e.count} | {e.average_dwell_seconds:.0f}"
        for e in context.relationships
    )
    return WORKSPACE_USER_TEMPLATE.format(
        resources=resource_lines or "(none)",
        relationships=relationship_lines or "(no usage history yet)",
    )


def _clean(title: str) -> str:
    return " ".join(title.replace("|", "/").split())[:120]
