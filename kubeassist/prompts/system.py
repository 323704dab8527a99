"""System prompt builder."""

from __future__ import annotations

from kubeassist.backends.base import ClusterInfo
from kubeassist.tools.base import Tool


def build_system_prompt(
    cluster: ClusterInfo,
    tools: list[Tool] | None = None,
    extra_sections: list[str] | None = None,
) -> str:
    """
    Build the system prompt for one chat invocation.

    Names the cluster the assistant is bound to and lists the tools it may
    call, with the confirmation protocol for mutating ones.
    """
    sections: list[str] = []

    identity = f"`{cluster.name}`"
    if cluster.version:
        identity += f" (Kubernetes {cluster.version})"
    sections.append(
        "You are a Kubernetes operations assistant. "
        f"You are connected to the cluster {identity} and can inspect it with your tools. "
        "Use the tools to answer questions about the cluster instead of guessing, "
        "and do not tell the user to run kubectl themselves when a tool can do it."
    )

    sections.append(SAFETY_SECTION)
    sections.append(CONFIRMATION_SECTION)
    sections.append(CONVENTIONS_SECTION)

    if tools:
        tool_lines = []
        for t in tools:
            kind = "mutating" if t.mutating else "read-only"
            tool_lines.append(f"- **{t.name}** [{kind}]: {t.description}")
        sections.append("## Available Tools\n\n" + "\n".join(tool_lines))

    if extra_sections:
        sections.extend(extra_sections)

    return "\n\n".join(sections)


SAFETY_SECTION = """## Safety

- Never reveal secrets, tokens or credentials found in cluster data.
- If a tool call is blocked by policy, explain why and suggest alternatives.
- If a tool returns an error, report it clearly; don't silently retry the same call."""

CONFIRMATION_SECTION = """## Confirmation Protocol

- Mutating tools take a `confirmed` argument. Call them first with `confirmed` false.
- A result with `"status": "awaiting_confirmation"` means nothing was changed yet:
  show the user the exact action and ask them to confirm.
- Only call the tool again with `confirmed` true after the user explicitly agrees."""

CONVENTIONS_SECTION = """## Output Conventions

- Answer in the user's language.
- Summarize lists; highlight unhealthy pods, nodes and failing deployments.
- When diagnosing a problem, check related events and logs before concluding.
- End a diagnosis with what was found, what it means, and recommended next steps."""
