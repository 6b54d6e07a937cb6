from __future__ import annotations

from apiposture.models import Endpoint
from apiposture.rules.base import EndpointRule

MAX_RECOMMENDED_ROLES = 3
WEAK_ROLE_NAMES = frozenset(
    {
        "user",
        "admin",
        "manager",
        "guest",
        "member",
        "role_user",
        "role_admin",
        "role_manager",
        "role_guest",
        "role_member",
    }
)
SENSITIVE_ROUTE_KEYWORDS: tuple[str, ...] = (
    "admin",
    "debug",
    "export",
    "import",
    "backup",
    "restore",
    "config",
    "configuration",
    "settings",
    "internal",
    "private",
    "secret",
    "token",
    "key",
    "password",
    "credential",
    "management",
    "actuator",
    "metrics",
    "health",
    "info",
)


def _public_without_intent(endpoint: Endpoint) -> str | None:
    if endpoint.tier != "public" or endpoint.authorization.permit_all:
        return None
    return f"Endpoint '{endpoint.route}' is publicly accessible without an explicit permit-all marker"


def _permit_all_on_write(endpoint: Endpoint) -> str | None:
    if not endpoint.has_write_verbs or not endpoint.authorization.permit_all:
        return None
    return (
        f"Endpoint '{endpoint.route}' allows public access via permit-all on write operations: "
        f"{', '.join(endpoint.write_verbs)}"
    )


def _method_overrides_type(endpoint: Endpoint) -> str | None:
    auth = endpoint.authorization
    if not auth.permit_all or auth.provenance != "method_overrides_type":
        return None
    return f"Endpoint '{endpoint.route}' has a permit-all marker that overrides the authorization declared on {endpoint.owner}"


def _unauthenticated_write(endpoint: Endpoint) -> str | None:
    if not endpoint.has_write_verbs or endpoint.tier != "public" or endpoint.authorization.permit_all:
        return None
    return (
        f"Endpoint '{endpoint.route}' allows unauthenticated write operations: "
        f"{', '.join(endpoint.write_verbs)}"
    )


def _excessive_roles(endpoint: Endpoint) -> str | None:
    roles = endpoint.authorization.roles
    if len(roles) <= MAX_RECOMMENDED_ROLES:
        return None
    return f"Endpoint '{endpoint.route}' has {len(roles)} roles: {', '.join(sorted(roles))}"


def _weak_role_naming(endpoint: Endpoint) -> str | None:
    weak = sorted(role for role in endpoint.authorization.roles if role.lower() in WEAK_ROLE_NAMES)
    if not weak:
        return None
    return f"Endpoint '{endpoint.route}' uses generic role names: {', '.join(weak)}"


def _sensitive_route_keyword(endpoint: Endpoint) -> str | None:
    if endpoint.tier != "public":
        return None
    route = endpoint.route.lower()
    keyword = next((word for word in SENSITIVE_ROUTE_KEYWORDS if word in route), None)
    if keyword is None:
        return None
    return f"Public endpoint '{endpoint.route}' contains sensitive keyword '{keyword}'"


def _no_security_at_all(endpoint: Endpoint) -> str | None:
    if not endpoint.authorization.is_unsecured:
        return None
    return f"Endpoint '{endpoint.route}' ({endpoint.handler}) has no security markers at all"


PUBLIC_WITHOUT_INTENT = EndpointRule(
    rule_id="AP001",
    name="Public without explicit intent",
    description=(
        "Detects public endpoints that lack an explicit permit-all marker, "
        "which may indicate unintentional exposure."
    ),
    severity="high",
    remediation="Add a permit-all marker to document public access, or add an authorization marker.",
    check=_public_without_intent,
)
PERMIT_ALL_ON_WRITE = EndpointRule(
    rule_id="AP002",
    name="Permit-all on write operation",
    description=(
        "Detects permit-all markers on write operations (POST, PUT, DELETE, PATCH), "
        "which may allow unauthorized data modification."
    ),
    severity="high",
    remediation="Remove the permit-all marker and require authorization for write operations.",
    check=_permit_all_on_write,
)
METHOD_OVERRIDES_TYPE = EndpointRule(
    rule_id="AP003",
    name="Controller/method authorization conflict",
    description=(
        "Detects member-level permit-all markers that override an authorization requirement "
        "declared on the owning type."
    ),
    severity="medium",
    remediation="Review whether the override is intentional and document the security decision.",
    check=_method_overrides_type,
)
UNAUTHENTICATED_WRITE = EndpointRule(
    rule_id="AP004",
    name="Missing authorization on write operation",
    description="Detects write operations (POST, PUT, DELETE, PATCH) that require no authorization.",
    severity="critical",
    remediation="Add an expression or role-list marker to restrict write access.",
    check=_unauthenticated_write,
)
EXCESSIVE_ROLES = EndpointRule(
    rule_id="AP005",
    name="Excessive role access",
    description=(
        f"Detects endpoints granting more than {MAX_RECOMMENDED_ROLES} roles, "
        "which may indicate overly permissive access."
    ),
    severity="low",
    remediation="Consolidate roles or use authority-based policies to simplify access control.",
    check=_excessive_roles,
)
WEAK_ROLE_NAMING = EndpointRule(
    rule_id="AP006",
    name="Weak role naming",
    description="Detects generic role names such as 'User' or 'Admin' that lack specificity.",
    severity="low",
    remediation="Use role names that describe the permission granted (for example ORDERS_MANAGER instead of Admin).",
    check=_weak_role_naming,
)
SENSITIVE_ROUTE_KEYWORD = EndpointRule(
    rule_id="AP007",
    name="Sensitive route keywords",
    description="Detects public routes containing keywords such as 'admin', 'debug' or 'export'.",
    severity="medium",
    remediation="Add authorization to this endpoint or move it under a secured path.",
    check=_sensitive_route_keyword,
)
NO_SECURITY_AT_ALL = EndpointRule(
    rule_id="AP008",
    name="Controller without security markers",
    description="Detects endpoints with no security marker at the member or type level.",
    severity="high",
    remediation="Add an authorization marker or a permit-all marker to define access explicitly.",
    check=_no_security_at_all,
)

BUILTIN_RULES: tuple[EndpointRule, ...] = (
    PUBLIC_WITHOUT_INTENT,
    PERMIT_ALL_ON_WRITE,
    METHOD_OVERRIDES_TYPE,
    UNAUTHENTICATED_WRITE,
    EXCESSIVE_ROLES,
    WEAK_ROLE_NAMING,
    SENSITIVE_ROUTE_KEYWORD,
    NO_SECURITY_AT_ALL,
)
