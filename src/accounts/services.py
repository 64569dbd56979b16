"""Service functions for agent registration and lifecycle."""
from __future__ import annotations

import logging
import secrets

from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.models import Agent, User
from core.exceptions import AuthorizationError, PolicyViolationError
from core.services import create_audit_log

logger = logging.getLogger("fulfillment")

_CODE_PREFIX = {
    Agent.AgentType.COURIER: "PDA",
    Agent.AgentType.SITE_MANAGER: "PSM",
}
_ROLE_FOR_TYPE = {
    Agent.AgentType.COURIER: User.Role.COURIER,
    Agent.AgentType.SITE_MANAGER: User.Role.SITE_MANAGER,
}


def require_admin(actor) -> None:
    """Raise :class:`AuthorizationError` unless *actor* is an administrator."""
    if actor is None or not getattr(actor, "is_fulfillment_admin", False):
        raise AuthorizationError("Administrator access required.")


def get_agent_for_user(user) -> Agent | None:
    """Return the active agent profile of *user*, or ``None``."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return Agent.objects.filter(user=user, is_active=True).select_related("assigned_site").first()


def _generate_agent_code(agent_type: str) -> str:
    return f"{_CODE_PREFIX[agent_type]}-{secrets.token_hex(3).upper()}"


@transaction.atomic
def register_agent(user: User, agent_type: str, assigned_site=None, actor=None) -> Agent:
    """Create the agent profile of *user*.

    Site managers must be attached to a pickup site; couriers may carry
    an optional home site used to filter the claimable order list.
    """
    if agent_type not in Agent.AgentType.values:
        raise PolicyViolationError(f"Unknown agent type '{agent_type}'.")
    if agent_type == Agent.AgentType.SITE_MANAGER and assigned_site is None:
        raise PolicyViolationError("A site manager must be assigned to a pickup site.")
    if Agent.objects.filter(user=user).exists():
        raise PolicyViolationError("This user already has an agent profile.")

    # Retry on the (unlikely) code collision.
    for _attempt in range(5):
        try:
            with transaction.atomic():
                agent = Agent.objects.create(
                    user=user,
                    agent_type=agent_type,
                    agent_code=_generate_agent_code(agent_type),
                    assigned_site=assigned_site,
                )
            break
        except IntegrityError:
            continue
    else:
        raise PolicyViolationError("Could not allocate a unique agent code.")

    expected_role = _ROLE_FOR_TYPE[agent_type]
    if user.role != expected_role:
        user.role = expected_role
        user.save(update_fields=["role"])

    create_audit_log(
        actor=actor or user,
        action="REGISTER_AGENT",
        entity_type="Agent",
        entity_id=agent.pk,
        after={
            "agent_type": agent_type,
            "agent_code": agent.agent_code,
            "assigned_site": str(assigned_site.pk) if assigned_site else None,
        },
    )
    logger.info("Agent %s registered (%s) for user %s", agent.agent_code, agent_type, user.pk)
    return agent


@transaction.atomic
def deactivate_agent(agent: Agent, actor) -> Agent:
    """Deactivate *agent* (admin only). Historical references are kept."""
    require_admin(actor)
    updated = Agent.objects.filter(pk=agent.pk, is_active=True).update(
        is_active=False,
        is_available=False,
        deactivated_at=timezone.now(),
        updated_at=timezone.now(),
    )
    agent.refresh_from_db()
    if updated:
        create_audit_log(
            actor=actor,
            action="DEACTIVATE_AGENT",
            entity_type="Agent",
            entity_id=agent.pk,
            after={"agent_code": agent.agent_code},
        )
        logger.info("Agent %s deactivated by %s", agent.agent_code, actor)
    return agent


def set_availability(agent: Agent, is_available: bool, actor) -> Agent:
    """Toggle whether *agent* takes new work. Only the agent or an admin may do it."""
    if actor is None or (agent.user_id != actor.pk and not actor.is_fulfillment_admin):
        raise AuthorizationError("Only the agent or an administrator can change availability.")
    if not agent.is_active:
        raise PolicyViolationError("A deactivated agent cannot be made available.")
    Agent.objects.filter(pk=agent.pk).update(is_available=is_available, updated_at=timezone.now())
    agent.refresh_from_db()
    logger.info("Agent %s availability set to %s", agent.agent_code, is_available)
    return agent


def get_site_manager(site_id) -> Agent | None:
    """Return the active manager of a pickup site, or ``None``."""
    if site_id is None:
        return None
    return (
        Agent.objects.filter(
            agent_type=Agent.AgentType.SITE_MANAGER,
            assigned_site_id=site_id,
            is_active=True,
        )
        .order_by("created_at")
        .first()
    )
