from __future__ import annotations

import unittest

from apiposture.discovery import EndpointCollector, join_route, normalize_path
from apiposture.syntax import Expression, Marker, MemberDecl, SourceUnit, TypeDecl


def _unit(*types: TypeDecl) -> SourceUnit:
    return SourceUnit(path="src/OrdersController.java", types=types)


class RouteTests(unittest.TestCase):
    def test_normalize_strips_one_slash_each_side(self) -> None:
        self.assertEqual(normalize_path("/api/"), "api")
        self.assertEqual(normalize_path("//api//"), "/api/")
        self.assertEqual(normalize_path(""), "")

    def test_join_route(self) -> None:
        self.assertEqual(join_route(normalize_path("/api/"), normalize_path("/items/")), "/api/items")
        self.assertEqual(join_route("", ""), "/")
        self.assertEqual(join_route(normalize_path("/a"), ""), "/a")
        self.assertEqual(join_route("", "b"), "/b")


class EndpointCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.collector = EndpointCollector()

    def test_ignores_types_without_controller_marker(self) -> None:
        service = TypeDecl(
            "OrderService",
            markers=(Marker("Service"),),
            members=(MemberDecl("list", (Marker("GetMapping"),), 3),),
        )
        self.assertEqual(self.collector.collect(_unit(service)).endpoints, ())

    def test_collects_routes_verbs_and_unmerged_intents(self) -> None:
        controller = TypeDecl(
            "OrdersController",
            markers=(
                Marker("RestController"),
                Marker("RequestMapping", "/api/orders/"),
                Marker("PreAuthorize", "hasRole('USER')"),
            ),
            members=(
                MemberDecl("list", (Marker("GetMapping"),), 10),
                MemberDecl("create", (Marker("PostMapping", "/new"), Marker("PermitAll")), 15),
                MemberDecl("helper", (), 20),
            ),
        )
        endpoints = self.collector.collect(_unit(controller)).endpoints

        self.assertEqual([endpoint.route for endpoint in endpoints], ["/api/orders", "/api/orders/new"])
        self.assertEqual(endpoints[0].verbs, ("GET",))
        self.assertEqual(endpoints[1].verbs, ("POST",))
        self.assertEqual(endpoints[0].type_intent.roles, frozenset({"USER"}))
        self.assertFalse(endpoints[0].member_intent.has_any_security)
        self.assertTrue(endpoints[1].member_intent.permit_all)
        self.assertEqual(endpoints[1].location.line, 15)
        self.assertEqual(endpoints[1].location.file_path, "src/OrdersController.java")
        self.assertEqual(endpoints[1].owner, "OrdersController")
        self.assertEqual(endpoints[1].member, "create")

    def test_generic_mapping_method_attribute(self) -> None:
        controller = TypeDecl(
            "ItemsController",
            markers=(Marker("Controller"),),
            members=(
                MemberDecl(
                    "update",
                    (
                        Marker(
                            "RequestMapping",
                            attributes={
                                "path": ("/items/{id}", "/legacy/{id}"),
                                "method": (Expression("RequestMethod.PATCH"), Expression("PUT"), Expression("BOGUS")),
                            },
                        ),
                    ),
                    7,
                ),
                MemberDecl("index", (Marker("RequestMapping"),), 12),
            ),
        )
        endpoints = self.collector.collect(_unit(controller)).endpoints

        self.assertEqual(endpoints[0].route, "/items/{id}")
        self.assertEqual(endpoints[0].verbs, ("PUT", "PATCH"))
        self.assertEqual(endpoints[1].route, "/")
        self.assertEqual(endpoints[1].verbs, ("GET",))

    def test_shorthand_and_generic_verbs_union(self) -> None:
        controller = TypeDecl(
            "MixedController",
            markers=(Marker("RestController"),),
            members=(
                MemberDecl(
                    "both",
                    (
                        Marker("PostMapping", "x"),
                        Marker("RequestMapping", attributes={"method": Expression("RequestMethod.GET")}),
                    ),
                    4,
                ),
            ),
        )
        endpoint = self.collector.collect(_unit(controller)).endpoints[0]
        self.assertEqual(endpoint.verbs, ("GET", "POST"))
        self.assertEqual(endpoint.route, "/x")

    def test_non_literal_path_contributes_empty_string(self) -> None:
        controller = TypeDecl(
            "ConstController",
            markers=(Marker("RestController"), Marker("RequestMapping", Expression("Paths.BASE"))),
            members=(MemberDecl("get", (Marker("GetMapping", "one"),), 2),),
        )
        self.assertEqual(self.collector.collect(_unit(controller)).endpoints[0].route, "/one")

    def test_unknown_line_is_zero(self) -> None:
        controller = TypeDecl(
            "C",
            markers=(Marker("RestController"),),
            members=(MemberDecl("m", (Marker("DeleteMapping"),)),),
        )
        self.assertEqual(self.collector.collect(_unit(controller)).endpoints[0].location.line, 0)

    def test_malformed_expression_is_reported_as_diagnostic(self) -> None:
        controller = TypeDecl(
            "GuardedController",
            markers=(Marker("RestController"),),
            members=(MemberDecl("get", (Marker("GetMapping"), Marker("PreAuthorize", "@guard.ok()")), 9),),
        )
        with self.assertLogs("apiposture.discovery", level="WARNING"):
            collection = self.collector.collect(_unit(controller))

        self.assertEqual(len(collection.endpoints), 1)
        self.assertEqual([diagnostic.kind for diagnostic in collection.diagnostics], ["malformed_expression"])
        self.assertEqual(collection.diagnostics[0].location.line, 9)


if __name__ == "__main__":
    unittest.main()
