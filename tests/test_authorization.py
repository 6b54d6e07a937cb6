from __future__ import annotations

import unittest

from apiposture.authorization import DEFAULT_VOCABULARY, ExpressionInterpreter, parse_expression
from apiposture.syntax import Expression, Marker


class ParseExpressionTests(unittest.TestCase):
    def test_extracts_single_role(self) -> None:
        fragments = parse_expression("hasRole('ADMIN')")
        self.assertEqual(fragments.roles, frozenset({"ADMIN"}))
        self.assertTrue(fragments.matched)

    def test_extracts_any_role_and_authorities(self) -> None:
        fragments = parse_expression(
            "hasAnyRole('ADMIN', \"OPS\") or hasAuthority('orders:write') or hasAnyAuthority('a', 'b')"
        )
        self.assertEqual(fragments.roles, frozenset({"ADMIN", "OPS"}))
        self.assertEqual(fragments.authorities, frozenset({"orders:write", "a", "b"}))
        self.assertFalse(fragments.authenticated)

    def test_matching_is_case_insensitive(self) -> None:
        fragments = parse_expression("ISAUTHENTICATED() and HASROLE('x')")
        self.assertTrue(fragments.authenticated)
        self.assertEqual(fragments.roles, frozenset({"x"}))

    def test_negation_is_not_interpreted(self) -> None:
        fragments = parse_expression("!hasRole('BANNED')")
        self.assertEqual(fragments.roles, frozenset({"BANNED"}))

    def test_unrecognized_text_is_unmatched_without_raising(self) -> None:
        fragments = parse_expression("@guard.check(#id, principal)")
        self.assertFalse(fragments.matched)
        self.assertEqual(fragments.roles, frozenset())

    def test_blank_text(self) -> None:
        self.assertFalse(parse_expression("   ").matched)


class ExpressionInterpreterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.interpreter = ExpressionInterpreter(DEFAULT_VOCABULARY)

    def test_expression_marker_sets_requirement_and_keeps_text(self) -> None:
        intent = self.interpreter.extract([Marker("PreAuthorize", "hasRole('ADMIN') and isAuthenticated()")])
        self.assertTrue(intent.requires_authorization)
        self.assertTrue(intent.authenticated_required)
        self.assertEqual(intent.roles, frozenset({"ADMIN"}))
        self.assertEqual(intent.expression, "hasRole('ADMIN') and isAuthenticated()")

    def test_malformed_expression_still_requires_authorization(self) -> None:
        interpretation = self.interpreter.interpret([Marker("PreAuthorize", "@perm.canRead(#id)")])
        self.assertTrue(interpretation.intent.requires_authorization)
        self.assertEqual(interpretation.intent.roles, frozenset())
        self.assertEqual(interpretation.intent.expression, "@perm.canRead(#id)")
        self.assertEqual(interpretation.unrecognized_expressions, ("@perm.canRead(#id)",))

    def test_expression_marker_without_argument_requires_authorization(self) -> None:
        intent = self.interpreter.extract([Marker("PreAuthorize")])
        self.assertTrue(intent.requires_authorization)
        self.assertFalse(intent.has_explicit_access)

    def test_non_literal_expression_keeps_source_text(self) -> None:
        intent = self.interpreter.extract([Marker("PreAuthorize", Expression("Policies.ADMIN_ONLY"))])
        self.assertTrue(intent.requires_authorization)
        self.assertEqual(intent.expression, "Policies.ADMIN_ONLY")

    def test_role_list_marker_keeps_roles_verbatim(self) -> None:
        intent = self.interpreter.extract(
            [Marker("Secured", ("ROLE_ADMIN", Expression("Roles.OPS"), "auditor"))]
        )
        self.assertTrue(intent.requires_authorization)
        self.assertEqual(intent.roles, frozenset({"ROLE_ADMIN", "auditor"}))

    def test_role_list_reads_value_attribute(self) -> None:
        intent = self.interpreter.extract([Marker("RolesAllowed", attributes={"value": "manager"})])
        self.assertEqual(intent.roles, frozenset({"manager"}))

    def test_permit_and_deny_do_not_require_authorization(self) -> None:
        intent = self.interpreter.extract([Marker("PermitAll"), Marker("DenyAll")])
        self.assertTrue(intent.permit_all)
        self.assertTrue(intent.deny_all)
        self.assertFalse(intent.requires_authorization)
        self.assertFalse(intent.has_any_security)

    def test_qualified_names_and_unknown_markers(self) -> None:
        intent = self.interpreter.extract(
            [
                Marker("org.springframework.security.access.prepost.PreAuthorize", "hasRole('A')"),
                Marker("Transactional"),
            ]
        )
        self.assertEqual(intent.roles, frozenset({"A"}))

    def test_no_markers_yields_empty_intent(self) -> None:
        intent = self.interpreter.extract([])
        self.assertFalse(intent.has_any_security)
        self.assertFalse(intent.has_explicit_access)
        self.assertIsNone(intent.expression)

    def test_extended_vocabulary_recognizes_custom_markers(self) -> None:
        vocabulary = DEFAULT_VOCABULARY.extended({"permit": ["AnonymousAllowed"]})
        intent = ExpressionInterpreter(vocabulary).extract([Marker("AnonymousAllowed")])
        self.assertTrue(intent.permit_all)

    def test_extended_vocabulary_rejects_unknown_kind(self) -> None:
        with self.assertRaises(ValueError):
            DEFAULT_VOCABULARY.extended({"bogus": ["X"]})


if __name__ == "__main__":
    unittest.main()
