"""Tests for the Databricks-style metadata export."""

from __future__ import annotations

import copy
import json
import unittest
from pathlib import Path

import pipelines  # noqa: F401

from pipeline_builder.export import to_databricks_metadata

FIXTURE_PATH = Path(__file__).parent / "test_DAG.json"


def load_fixture() -> dict:
    with FIXTURE_PATH.open("r", encoding="utf-8") as fh:
        return json.load(fh)


class DatabricksMetadataTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dag = load_fixture()

    def test_sections(self) -> None:
        metadata = to_databricks_metadata(self.dag)
        self.assertEqual(metadata["name"], "Customer orders report")
        self.assertEqual(
            [s["id"] for s in metadata["sources"]], ["csvSource-1", "postgresqlSource-2"]
        )
        self.assertEqual(
            [t["id"] for t in metadata["transformations"]], ["join-3", "filter-4", "sort-5"]
        )
        self.assertEqual(metadata["targets"][0]["id"], "sqlOutput-6")

    def test_sources(self) -> None:
        csv_source, sql_source = to_databricks_metadata(self.dag)["sources"]
        self.assertEqual(
            csv_source,
            {"id": "csvSource-1", "format": "csv", "table": "orders.csv", "path": "/data/orders.csv"},
        )
        self.assertEqual(sql_source["format"], "sql")
        self.assertEqual(sql_source["table"], "customers")
        self.assertEqual(
            sql_source["connectionDetails"],
            {
                "host": "db.internal",
                "port": 5432,
                "database": "crm",
                "username": "etl",
                "type": "postgresql",
            },
        )

    def test_passwords_are_never_exported(self) -> None:
        metadata = to_databricks_metadata(self.dag)
        self.assertNotIn("secret", json.dumps(metadata))

    def test_join_sources_follow_ports(self) -> None:
        dag = copy.deepcopy(self.dag)
        dag["edges"][0], dag["edges"][1] = dag["edges"][1], dag["edges"][0]
        join = to_databricks_metadata(dag)["transformations"][0]
        self.assertEqual(join["sources"], ["csvSource-1", "postgresqlSource-2"])
        self.assertEqual(join["predecessor"], "csvSource-1")
        self.assertEqual(
            join["on"][0]["condition"], "csvSource-1.customer_id = postgresqlSource-2.id"
        )
        self.assertEqual(join["joinType"], "inner")

    def test_join_type_mapping(self) -> None:
        expected = {"left": "leftOuter", "right": "rightOuter", "outer": "fullOuter", "full": "fullOuter"}
        for join_type, mapped in expected.items():
            dag = copy.deepcopy(self.dag)
            dag["nodes"][2]["data"]["joinType"] = join_type
            join = to_databricks_metadata(dag)["transformations"][0]
            self.assertEqual(join["joinType"], mapped)

    def test_transformation_details(self) -> None:
        _, filter_step, sort_step = to_databricks_metadata(self.dag)["transformations"]
        self.assertEqual(filter_step["predecessor"], "join-3")
        self.assertEqual(
            filter_step["condition"], {"column": "amount", "operator": ">", "value": 100}
        )
        self.assertEqual(sort_step["sortColumns"], [{"column": "amount", "direction": "desc"}])

    def test_group_columns_fallback(self) -> None:
        dag = {
            "nodes": [
                {"id": "g", "type": "groupBy", "data": {"groupByColumns": ["region"]}},
            ]
        }
        group = to_databricks_metadata(dag)["transformations"][0]
        self.assertEqual(group["groupColumns"], ["region"])
        self.assertIsNone(group["predecessor"])

    def test_target(self) -> None:
        target = to_databricks_metadata(self.dag)["targets"][0]
        self.assertEqual(
            target,
            {
                "id": "sqlOutput-6",
                "predecessor": "sort-5",
                "format": "sql",
                "table": "large_orders",
                "database": None,
                "mode": "append",
                "connectionDetails": {"type": "sqlite"},
            },
        )


if __name__ == "__main__":
    unittest.main()
