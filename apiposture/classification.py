from __future__ import annotations

from apiposture.models import EffectiveAuthorization, Endpoint, SecurityTier


def classify_authorization(auth: EffectiveAuthorization) -> SecurityTier:
    if auth.permit_all:
        return "public"
    # Deny-all is reported as the most restrictive tier; nothing flags it as unreachable.
    if auth.deny_all:
        return "policy_restricted"
    if auth.roles:
        return "role_restricted"
    if auth.authorities:
        return "policy_restricted"
    if auth.requires_authorization or auth.authenticated_required:
        return "authenticated"
    return "public"


def classify(endpoint: Endpoint) -> Endpoint:
    return endpoint.with_tier(classify_authorization(endpoint.authorization))
