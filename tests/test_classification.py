from __future__ import annotations

import unittest

from apiposture.classification import classify, classify_authorization
from apiposture.models import EffectiveAuthorization, Endpoint, SourceLocation


def _endpoint(auth: EffectiveAuthorization) -> Endpoint:
    return Endpoint(
        route="/x",
        verbs=("GET",),
        owner="C",
        member="m",
        location=SourceLocation("C.java", 1),
        authorization=auth,
    )


class ClassificationTests(unittest.TestCase):
    def test_permit_all_is_public_even_with_roles(self) -> None:
        auth = EffectiveAuthorization(
            permit_all=True,
            deny_all=True,
            roles=frozenset({"ADMIN"}),
            authorities=frozenset({"a"}),
        )
        self.assertEqual(classify_authorization(auth), "public")

    def test_deny_all_short_circuits_roles(self) -> None:
        auth = EffectiveAuthorization(deny_all=True, roles=frozenset({"ADMIN"}))
        self.assertEqual(classify_authorization(auth), "policy_restricted")

    def test_roles_before_authorities(self) -> None:
        auth = EffectiveAuthorization(roles=frozenset({"ADMIN"}), authorities=frozenset({"a"}))
        self.assertEqual(classify_authorization(auth), "role_restricted")

    def test_authorities_are_policy_restricted(self) -> None:
        self.assertEqual(classify_authorization(EffectiveAuthorization(authorities=frozenset({"a"}))), "policy_restricted")

    def test_requirement_without_specifics_is_authenticated(self) -> None:
        self.assertEqual(classify_authorization(EffectiveAuthorization(requires_authorization=True)), "authenticated")
        self.assertEqual(classify_authorization(EffectiveAuthorization(authenticated_required=True)), "authenticated")

    def test_nothing_is_public(self) -> None:
        self.assertEqual(classify_authorization(EffectiveAuthorization()), "public")

    def test_classification_is_deterministic(self) -> None:
        auth = EffectiveAuthorization(requires_authorization=True, roles=frozenset({"A", "B"}))
        self.assertEqual({classify_authorization(auth) for _ in range(20)}, {"role_restricted"})

    def test_classify_assigns_tier_exactly_once(self) -> None:
        endpoint = _endpoint(EffectiveAuthorization(roles=frozenset({"ADMIN"})))
        classified = classify(endpoint)

        self.assertEqual(endpoint.tier, "unclassified")
        self.assertEqual(classified.tier, "role_restricted")
        with self.assertRaises(ValueError):
            classify(classified)


if __name__ == "__main__":
    unittest.main()
