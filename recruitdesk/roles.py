"""Role identifiers, names and display labels.

Every place that needs to turn a ``role_id`` into a role name, or a role name
into something a person reads, goes through this module.
"""

from typing import Optional

ADMIN = "admin"
SUPERVISOR = "supervisor"
CANDIDATE = "candidate"
USER = "user"

ROLE_NAMES = {
    1: ADMIN,
    3: SUPERVISOR,
    4: CANDIDATE,
}

ROLE_LABELS = {
    ADMIN: "Administrator",
    SUPERVISOR: "Supervisor",
    CANDIDATE: "Candidate",
    USER: "User",
}

STAFF_ROLES = frozenset({ADMIN, SUPERVISOR})


def role_name(role_id: Optional[int]) -> str:
    """Map a numeric role id to its role name (unknown ids are plain users)."""
    return ROLE_NAMES.get(role_id, USER)


def role_label(role: Optional[str]) -> str:
    return ROLE_LABELS.get(role or USER, (role or USER).title())


def is_staff(role: Optional[str]) -> bool:
    return role in STAFF_ROLES
