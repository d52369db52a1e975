# Overview: Identity & role directory lookups used by the workflow services.

from __future__ import annotations

from ..errors import NotFound
from ..extensions import db
from ..models import User, Role


def get_user(user_id: int) -> User:
    """Load a user or raise NotFound."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if not user:
        raise NotFound("User not found", {"user_id": user_id})
    return user


def role_of(user_id: int) -> Role:
    return Role(get_user(user_id).role)


def get_supervisor_of(agent_id: int) -> User | None:
    """The agent's supervisor, or None when the agent has no reporting link."""
    agent = get_user(agent_id)
    if agent.supervisor_id is None:
        return None
    return db.session.get(User, agent.supervisor_id)


def team_of(supervisor_id: int) -> list[User]:
    """Agents whose reporting link points at supervisor_id."""
    return (
        db.session.query(User)
        .filter(User.supervisor_id == supervisor_id)
        .order_by(User.matricule.asc())
        .all()
    )


def team_ids_of(supervisor_id: int) -> list[int]:
    rows = db.session.query(User.id).filter(User.supervisor_id == supervisor_id).all()
    return [row[0] for row in rows]
