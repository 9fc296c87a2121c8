"""
Caller identity — the session layer in front of this service authenticates
users and forwards who they are in trusted headers.
"""

from typing import Optional

from fastapi import Header, HTTPException

from core.store import Role
from core.workflow import Actor


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_department_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(401, "Missing X-Actor-Id header.")
    try:
        role = Role((x_actor_role or "").strip().lower())
    except ValueError:
        raise HTTPException(401, f"Invalid X-Actor-Role header: '{x_actor_role}'.")
    department = (x_department_id or "").strip() or None
    name = (x_actor_name or "").strip() or None
    return Actor(actor_id=x_actor_id.strip(), role=role, department_id=department, display_name=name)
