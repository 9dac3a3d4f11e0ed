"""
Privacy projection of the acting user onto pushed payloads.

The same event yields a different actor view per recipient:

* by default only initials and the raw email are exposed;
* the group owner additionally sees the actor's real name (or email);
* a picture is exposed only when the actor uploaded a custom one, and then to
  everyone.
"""

import re
from typing import Any, Dict, Optional

from ..resolver.base import ActorProfile


def compute_initials(name_or_email: Optional[str]) -> Optional[str]:
    """Avatar initials from a display name, or an email's local part."""
    if not name_or_email:
        return None
    text = str(name_or_email).strip()
    if not text:
        return None
    local = text.split("@")[0] if "@" in text else text
    parts = [part for part in re.split(r"\s+", local) if part]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0][:2].upper()
    return (parts[0][0] + parts[-1][0]).upper()


def build_actor_fields(base: Dict[str, Any], actor: Optional[ActorProfile]) -> Dict[str, Any]:
    """Actor fields shared by every recipient, before the owner exception."""
    if actor is None:
        return {
            "userPicture": None,
            "userInitials": compute_initials(base.get("userName")),
            "userEmail": base.get("userEmail") or None,
            "userName": base.get("userName") or None,
        }
    return {
        "userPicture": actor.custom_picture or None,
        "userInitials": compute_initials(actor.name or actor.email),
        "userEmail": actor.email or None,
        "userName": (actor.name or actor.email or None) if actor.has_custom_picture else None,
    }


def project_for_recipient(
    base: Dict[str, Any],
    actor: Optional[ActorProfile],
    recipient_id: str,
    group_owner_id: Optional[str] = None
) -> Dict[str, Any]:
    """Return a copy of ``base`` carrying the actor view for one recipient."""
    payload = dict(base)
    payload.update(build_actor_fields(base, actor))

    if actor is not None and group_owner_id and recipient_id == group_owner_id:
        payload["userName"] = actor.name or actor.email or None

    return payload
