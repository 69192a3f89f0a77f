# core/route_access.py
"""
Route-prefix policy for the page gate.

Each inbound path is classified into a zone by the most specific matching
rule in ROUTE_TABLE. Prefixes only match on whole path segments, so
"/partner" covers "/partner" and "/partner/fleet" but not "/partner-staff".
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from core.config import settings
from core.roles import (
    Role,
    ADMIN_ROLES,
    PARTNER_ROLES,
    home_path_for,
)


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    # None means public
    allowed_roles: Optional[FrozenSet[Role]] = None
    exact: bool = False

    @property
    def is_public(self) -> bool:
        return self.allowed_roles is None

    def matches(self, path: str) -> bool:
        if self.exact:
            return path == self.prefix
        if path == self.prefix:
            return True
        return path.startswith(self.prefix.rstrip("/") + "/")


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: str = ""


AUTH_ENTRY_PATHS = ("/auth/login", "/auth/register")


ROUTE_TABLE = (
    # Public
    RouteRule("/", exact=True),
    RouteRule("/auth/login"),
    RouteRule("/auth/register"),
    RouteRule("/auth/forgot-password"),
    RouteRule("/compare"),
    RouteRule("/services"),
    RouteRule("/about"),
    RouteRule("/cars"),
    RouteRule("/health"),
    # API handlers answer 401/403 themselves
    RouteRule("/api"),
    RouteRule("/docs"),
    RouteRule("/openapi.json"),

    # Admin zone
    RouteRule("/admin", ADMIN_ROLES),

    # Partner zone
    RouteRule("/partner", PARTNER_ROLES),
    RouteRule("/partner-staff", PARTNER_ROLES),

    # Driver zone
    RouteRule("/driver", frozenset({Role.DRIVER})),
)


def match_rule(path: str, table=ROUTE_TABLE) -> Optional[RouteRule]:
    """Longest matching prefix wins; equal lengths keep table order."""
    best = None
    for rule in table:
        if not rule.matches(path):
            continue
        if best is None or len(rule.prefix) > len(best.prefix):
            best = rule
    return best


def is_auth_entry(path: str) -> bool:
    return any(
        path == entry or path.startswith(entry + "/")
        for entry in AUTH_ENTRY_PATHS
    )


def decide(path: str, role: Optional[Role], table=ROUTE_TABLE) -> AccessDecision:
    """
    role is None for anonymous requests.

    Order:
      1. signed-in user on a login/register page -> role home
      2. public rule -> allow
      3. no session -> login
      4. protected zone and role not listed -> login
      5. allow
    """
    login = settings.LOGIN_PATH

    if role is not None and is_auth_entry(path):
        return AccessDecision(False, home_path_for(role), "already signed in")

    rule = match_rule(path, table)

    if rule is not None and rule.is_public:
        return AccessDecision(True, reason="public")

    if role is None:
        return AccessDecision(False, login, "no session")

    if rule is not None and role not in rule.allowed_roles:
        return AccessDecision(False, login, f"role {role} not allowed on {rule.prefix}")

    return AccessDecision(True, reason="authorized")


def needs_session(path: str, table=ROUTE_TABLE) -> bool:
    """False when the decision for this path does not depend on the caller."""
    if is_auth_entry(path):
        return True
    rule = match_rule(path, table)
    return rule is None or not rule.is_public
