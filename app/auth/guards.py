"""Route guarding by resolved role.

Mirrors what the dashboard router does with a resolved role: let the request
through, send the principal to their own dashboard, or send them to login.
"""
from dataclasses import dataclass

from app.models.enums import ResolvedRole
from app.services.role_resolver import DASHBOARD_BY_ROLE, Resolution

SUPPORT_NOTICE = "Your account has conflicting trainer and client records. Contact support or run the account repair."


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    redirect_to: str | None = None
    notice: str | None = None


def guard_route(role: ResolvedRole, allowed_roles: tuple[ResolvedRole, ...]) -> GuardDecision:
    if role == ResolvedRole.UNKNOWN:
        return GuardDecision(allowed=False, redirect_to=DASHBOARD_BY_ROLE[ResolvedRole.UNKNOWN], notice="Please sign in again.")
    if role in allowed_roles:
        return GuardDecision(allowed=True)
    return GuardDecision(
        allowed=False,
        redirect_to=DASHBOARD_BY_ROLE[role],
        notice=f"This page is not available to {role.value} accounts.",
    )


def session_notices(resolution: Resolution) -> list[str]:
    notices: list[str] = []
    if resolution.inconsistent:
        notices.append(SUPPORT_NOTICE)
    if resolution.source == "cache":
        notices.append("Your profile record is missing. Contact support.")
    if resolution.requires_sign_out:
        notices.append("No trainer or client profile is linked to this account.")
    return notices
