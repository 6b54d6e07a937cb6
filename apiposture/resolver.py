from __future__ import annotations

from apiposture.discovery import DiscoveredEndpoint
from apiposture.models import AuthorizationIntent, EffectiveAuthorization, Endpoint

EMPTY_INTENT = AuthorizationIntent()


def resolve_authorization(type_intent: AuthorizationIntent, member_intent: AuthorizationIntent) -> EffectiveAuthorization:
    """Merge type-level and member-level intent into one effective authorization.

    First match wins:
      1. member permit/deny marker: the member intent, flagged as an override when the type
         declared any requirement;
      2. member declares any requirement: the member intent;
      3. type declares any requirement: the type intent, inherited;
      4. nothing declared anywhere.
    """
    type_has_security = type_intent.has_any_security
    if member_intent.has_explicit_access:
        provenance = "method_overrides_type" if type_has_security else "method_own"
        return EffectiveAuthorization.from_intent(member_intent, provenance, type_has_security)
    if member_intent.has_any_security:
        return EffectiveAuthorization.from_intent(member_intent, "method_own", type_has_security)
    if type_has_security:
        return EffectiveAuthorization.from_intent(type_intent, "inherited_from_type", True)
    return EffectiveAuthorization.from_intent(EMPTY_INTENT, "none", False)


def resolve(discovered: DiscoveredEndpoint) -> Endpoint:
    return Endpoint(
        route=discovered.route,
        verbs=discovered.verbs,
        owner=discovered.owner,
        member=discovered.member,
        location=discovered.location,
        authorization=resolve_authorization(discovered.type_intent, discovered.member_intent),
    )
