"""Helpers shared by backends when summarizing Kubernetes objects."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

NODE_ROLE_PREFIX = "node-role.kubernetes.io/"


def format_age(created: datetime | None, now: datetime | None = None) -> str:
    """Render the time since *created* the way kubectl does: ``3d``, ``5h``, ``12m``."""
    if created is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    seconds = max(0.0, (now - created).total_seconds())
    hours = seconds / 3600
    if hours >= 24 * 365:
        return f"{hours / (24 * 365):.0f}y"
    if hours >= 24:
        return f"{hours / 24:.0f}d"
    if hours >= 1:
        return f"{hours:.0f}h"
    if seconds >= 60:
        return f"{seconds / 60:.0f}m"
    return f"{seconds:.0f}s"


def format_service_ports(ports: Iterable[tuple[int, int | None, str]]) -> str:
    """``[(80, 30080, "TCP"), (443, None, "TCP")]`` -> ``"80:30080/TCP, 443/TCP"``."""
    parts = []
    for port, node_port, protocol in ports:
        if node_port:
            parts.append(f"{port}:{node_port}/{protocol}")
        else:
            parts.append(f"{port}/{protocol}")
    return ", ".join(parts)


def join_images(images: Iterable[str]) -> str:
    return ", ".join(images)


def node_roles(labels: dict[str, str] | None) -> list[str]:
    roles = sorted(
        key[len(NODE_ROLE_PREFIX):]
        for key in (labels or {})
        if key.startswith(NODE_ROLE_PREFIX) and key[len(NODE_ROLE_PREFIX):]
    )
    return roles or ["<none>"]
