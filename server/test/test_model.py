"""Tests for the pipeline entity model and node kind schemas."""

from __future__ import annotations

import unittest

from pipelines import sales_pipeline

from pipeline_builder.dag import (
    ConfigurationChanged,
    DuplicateNode,
    InvalidReference,
    NotFound,
    Pipeline,
    PipelineError,
    UnknownKind,
    get_kind,
    serialize,
)


class NodeMutationTests(unittest.TestCase):
    def test_add_node_assigns_fresh_ids(self) -> None:
        pipeline = Pipeline()
        first = pipeline.add_node("filter", {"x": 10, "y": 20})
        second = pipeline.add_node("filter")
        self.assertNotEqual(first.node_id, second.node_id)
        self.assertEqual(first.configuration, {})
        self.assertFalse(first.configured)
        self.assertEqual(first.label, "Filter")
        self.assertEqual(first.position.as_dict(), {"x": 10.0, "y": 20.0})

    def test_deleted_ids_are_not_reused(self) -> None:
        pipeline = Pipeline()
        node = pipeline.add_node("sort")
        pipeline.delete_node(node.node_id)
        replacement = pipeline.add_node("sort")
        self.assertNotEqual(node.node_id, replacement.node_id)

    def test_generated_ids_skip_loaded_ids(self) -> None:
        pipeline = Pipeline()
        pipeline.add_node("map", node_id="map-7")
        fresh = pipeline.add_node("map")
        self.assertEqual(fresh.node_id, "map-8")

    def test_unknown_kind_is_rejected(self) -> None:
        with self.assertRaises(UnknownKind):
            Pipeline().add_node("pivot")

    def test_duplicate_explicit_id_is_rejected(self) -> None:
        pipeline = Pipeline()
        pipeline.add_node("filter", node_id="f")
        with self.assertRaises(DuplicateNode):
            pipeline.add_node("map", node_id="f")

    def test_configuration_merge_is_last_write_wins(self) -> None:
        pipeline = Pipeline()
        node = pipeline.add_node("filter")
        pipeline.update_node_configuration(node.node_id, {"column": "amount", "operator": "<"})
        self.assertFalse(node.configured)
        pipeline.update_node_configuration(node.node_id, {"operator": ">", "value": "100"})
        self.assertEqual(
            node.configuration, {"column": "amount", "operator": ">", "value": "100"}
        )
        self.assertTrue(node.configured)

    def test_none_in_patch_removes_key(self) -> None:
        pipeline = sales_pipeline()
        node = pipeline.update_node_configuration("filter", {"value": None})
        self.assertNotIn("value", node.configuration)
        self.assertFalse(node.configured)

    def test_configuration_changed_command(self) -> None:
        pipeline = Pipeline()
        node = pipeline.add_node("csvOutput")
        pipeline.apply(ConfigurationChanged(node.node_id, {"filePath": "out/result.csv"}))
        self.assertTrue(node.configured)

    def test_update_unknown_node_raises_not_found(self) -> None:
        with self.assertRaises(NotFound):
            Pipeline().update_node_configuration("ghost", {"column": "a"})

    def test_delete_node_cascades_edges(self) -> None:
        pipeline = sales_pipeline()
        pipeline.delete_node("filter")
        self.assertEqual(pipeline.edges, [])
        for edge in pipeline.edges:
            self.assertNotIn("filter", (edge.source, edge.target))
        self.assertEqual([n.node_id for n in pipeline.nodes], ["source", "output"])

    def test_delete_node_is_idempotent(self) -> None:
        pipeline = sales_pipeline()
        pipeline.delete_node("filter")
        pipeline.delete_node("filter")
        self.assertEqual(len(pipeline), 2)

    def test_move_node_only_changes_position(self) -> None:
        pipeline = sales_pipeline()
        node = pipeline.move_node("filter", (5, 6))
        self.assertEqual(node.position.as_dict(), {"x": 5.0, "y": 6.0})
        self.assertTrue(node.configured)

    def test_canvas_fields_never_become_configuration(self) -> None:
        pipeline = sales_pipeline()
        node = pipeline.update_node_configuration(
            "filter", {"label": "Large sales", "configured": False, "onUpdate": print}
        )
        self.assertEqual(node.label, "Large sales")
        self.assertEqual(node.configuration, {"column": "amount", "operator": ">", "value": "100"})
        self.assertTrue(node.configured)
        data = serialize(pipeline).to_dict()["nodes"][1]["data"]
        self.assertEqual(data["label"], "Large sales")
        self.assertTrue(data["configured"])

        added = pipeline.add_node("sort", configuration={"configured": True, "sortColumns": []})
        self.assertEqual(added.configuration, {"sortColumns": []})
        self.assertFalse(added.configured)

    def test_label_reset_restores_default(self) -> None:
        pipeline = sales_pipeline()
        node = pipeline.update_node_configuration("filter", {"label": None})
        self.assertEqual(node.label, "Filter")

    def test_positions_must_be_finite(self) -> None:
        pipeline = sales_pipeline()
        for position in ({"x": float("nan"), "y": 0}, (float("inf"), 1), {"x": "oops"}, (1, 2, 3)):
            with self.assertRaises(PipelineError):
                pipeline.move_node("filter", position)
        with self.assertRaises(PipelineError):
            pipeline.add_node("map", {"x": 1, "y": float("-inf")})
        self.assertEqual(pipeline.get_node("filter").position.as_dict(), {"x": 400.0, "y": 100.0})


class EdgeMutationTests(unittest.TestCase):
    def test_edge_ids_are_derived_from_endpoints(self) -> None:
        pipeline = sales_pipeline()
        self.assertEqual([e.edge_id for e in pipeline.edges], ["source-filter", "filter-output"])

    def test_parallel_edges_get_distinct_ids(self) -> None:
        pipeline = sales_pipeline()
        extra = pipeline.add_edge("source", "filter")
        self.assertEqual(extra.edge_id, "source-filter-2")
        self.assertEqual(len(pipeline.edges), 3)

    def test_handles_are_part_of_the_edge(self) -> None:
        pipeline = Pipeline()
        pipeline.add_node("csvSource", node_id="a")
        pipeline.add_node("join", node_id="j")
        edge = pipeline.add_edge("a", "j", target_handle="left")
        self.assertEqual(edge.target_handle, "left")
        self.assertIsNone(edge.source_handle)
        self.assertEqual(edge.edge_id, "a-j.left")

    def test_unknown_endpoint_raises_invalid_reference(self) -> None:
        pipeline = sales_pipeline()
        with self.assertRaises(InvalidReference) as ctx:
            pipeline.add_edge("source", "missing")
        self.assertEqual(ctx.exception.missing, ["missing"])

    def test_cycles_are_allowed_while_editing(self) -> None:
        pipeline = sales_pipeline()
        edge = pipeline.add_edge("output", "source")
        self.assertIn(edge, pipeline.edges)

    def test_delete_edge_is_idempotent(self) -> None:
        pipeline = sales_pipeline()
        pipeline.delete_edge("source-filter")
        pipeline.delete_edge("source-filter")
        self.assertEqual([e.edge_id for e in pipeline.edges], ["filter-output"])

    def test_get_edge(self) -> None:
        pipeline = sales_pipeline()
        edge = pipeline.get_edge("filter-output")
        self.assertEqual((edge.source, edge.target), ("filter", "output"))
        pipeline.delete_edge("filter-output")
        with self.assertRaises(NotFound):
            pipeline.get_edge("filter-output")

    def test_incoming_outgoing_and_clear(self) -> None:
        pipeline = sales_pipeline()
        self.assertEqual([e.source for e in pipeline.incoming("filter")], ["source"])
        self.assertEqual([e.target for e in pipeline.outgoing("filter")], ["output"])
        self.assertEqual(pipeline.incoming("source"), [])
        pipeline.clear()
        self.assertEqual(len(pipeline), 0)
        self.assertEqual(pipeline.edges, [])


class KindSchemaTests(unittest.TestCase):
    def test_truthy_values_of_the_wrong_shape_do_not_configure(self) -> None:
        join = get_kind("join")
        self.assertFalse(
            join.is_configured({"leftColumn": "a", "rightColumn": "b", "joinType": "sideways"})
        )
        self.assertEqual(
            join.missing_configuration({"leftColumn": "a", "rightColumn": ["b"]}),
            ["rightColumn", "joinType"],
        )

    def test_filter_value_accepts_numbers_but_not_booleans(self) -> None:
        kind = get_kind("filter")
        base = {"column": "amount", "operator": ">"}
        self.assertTrue(kind.is_configured({**base, "value": 0}))
        self.assertFalse(kind.is_configured({**base, "value": True}))
        self.assertFalse(kind.is_configured({**base, "value": "   "}))

    def test_sql_source_needs_table_or_query(self) -> None:
        kind = get_kind("mysqlSource")
        self.assertFalse(kind.is_configured({"databaseType": "mysql"}))
        self.assertTrue(kind.is_configured({"databaseType": "mysql", "query": "select 1"}))
        self.assertEqual(kind.missing_configuration({}), ["databaseType", "tableName or query"])

    def test_list_shaped_configuration(self) -> None:
        group_by = get_kind("groupBy")
        self.assertFalse(
            group_by.is_configured(
                {"groupColumns": ["region"], "aggregations": [{"column": "", "function": "sum"}]}
            )
        )
        self.assertTrue(
            group_by.is_configured(
                {"groupColumns": ["region"], "aggregations": [{"column": "amount", "function": "sum"}]}
            )
        )
        self.assertTrue(get_kind("sort").is_configured({"sortColumns": [{"column": "amount"}]}))
        self.assertFalse(
            get_kind("map").is_configured({"mappings": [{"sourceColumn": "a", "targetColumn": ""}]})
        )


if __name__ == "__main__":
    unittest.main()
