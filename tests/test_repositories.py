"""
Tests for the asyncpg repositories against a recording fake pool

Checks row mapping, driver error wrapping, and row-count parsing without
a running PostgreSQL.

Run with: python -m pytest tests/test_repositories.py
"""

import json
import unittest
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest import mock

import asyncpg

from database.db_postgres import Database, _jsonb_encoder
from database.models import ClusteringComponents
from database.repositories_async import PollSignalRepository, WeightRepository
from exceptions import DataIntegrityError, DatabaseConnectionError, DatabaseError
from tests.fakes import NOW


class FakeConnection:
    def __init__(self, rows=None, row=None, status="", error=None):
        self.rows = rows or []
        self.row = row
        self.status = status
        self.error = error
        self.calls = []

    def _record(self, method, query, args):
        self.calls.append((method, query, args))
        if self.error:
            raise self.error

    async def fetch(self, query, *args):
        self._record("fetch", query, args)
        return self.rows

    async def fetchrow(self, query, *args):
        self._record("fetchrow", query, args)
        return self.row

    async def execute(self, query, *args):
        self._record("execute", query, args)
        return self.status

    async def executemany(self, query, args):
        self._record("executemany", query, args)


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def weight_row(statement_id="s1", weight=0.4, components=None):
    return {
        "poll_id": "P1",
        "statement_id": statement_id,
        "weight": weight,
        "mode": "clustering",
        "components": components or {
            "mode": "clustering",
            "predictiveness": 0.8,
            "consensus_potential": 0.5,
            "recency_boost": 1.0,
            "pass_rate_penalty": 1.0,
            "classification": None,
        },
        "computed_at": NOW,
        "agree_count": 1,
        "disagree_count": 2,
        "pass_count": 0,
    }


class TestWeightRepository(unittest.IsolatedAsyncioTestCase):

    async def test_get_weights_batch_maps_rows(self):
        conn = FakeConnection(rows=[weight_row("s1"), weight_row("s2", 0.9)])
        repo = WeightRepository(FakePool(conn))

        weights = await repo.get_weights_batch("P1", ["s1", "s2", "s3"])

        self.assertEqual(sorted(weights), ["s1", "s2"])
        self.assertIsInstance(weights["s1"].components, ClusteringComponents)
        self.assertEqual(weights["s2"].weight, 0.9)
        _, _, args = conn.calls[0]
        self.assertEqual(args, ("P1", ["s1", "s2", "s3"]))

    async def test_empty_batch_skips_query(self):
        conn = FakeConnection()
        self.assertEqual(await WeightRepository(FakePool(conn)).get_weights_batch("P1", []), {})
        self.assertEqual(conn.calls, [])

    async def test_unreadable_row_raises_database_error(self):
        conn = FakeConnection(rows=[weight_row(weight=0.0)])
        with self.assertRaises(DatabaseError):
            await WeightRepository(FakePool(conn)).get_weights_batch("P1", ["s1"])

    async def test_upsert_sends_one_tuple_per_weight(self):
        conn = FakeConnection(rows=[weight_row("s1")])
        repo = WeightRepository(FakePool(conn))
        cached = await repo.get_weights_batch("P1", ["s1"])

        await repo.upsert_weights(list(cached.values()))

        method, query, args = conn.calls[-1]
        self.assertEqual(method, "executemany")
        self.assertIn("ON CONFLICT (poll_id, statement_id)", query)
        self.assertEqual(args[0][:4], ("P1", "s1", 0.4, "clustering"))

    async def test_delete_returns_row_count(self):
        conn = FakeConnection(status="DELETE 3")
        self.assertEqual(await WeightRepository(FakePool(conn)).delete_weights_for_poll("P1"), 3)

    async def test_driver_error_wrapped(self):
        conn = FakeConnection(error=asyncpg.PostgresError("relation does not exist"))
        with self.assertRaises(DatabaseError) as ctx:
            await WeightRepository(FakePool(conn)).get_weights_for_poll("P1")
        self.assertNotIsInstance(ctx.exception, DatabaseConnectionError)
        self.assertIn("query", ctx.exception.context)

    async def test_connection_error_wrapped_as_retryable(self):
        conn = FakeConnection(error=ConnectionRefusedError("connection refused"))
        with self.assertRaises(DatabaseConnectionError) as ctx:
            await WeightRepository(FakePool(conn)).delete_weights_for_poll("P1")
        self.assertTrue(ctx.exception.is_retryable)

    async def test_constraint_violation_wrapped_as_integrity_error(self):
        conn = FakeConnection(rows=[weight_row("s1")])
        repo = WeightRepository(FakePool(conn))
        cached = await repo.get_weights_batch("P1", ["s1"])
        conn.error = asyncpg.ForeignKeyViolationError("statement s1 does not exist")

        with self.assertRaises(DataIntegrityError) as ctx:
            await repo.upsert_weights(list(cached.values()))
        self.assertFalse(ctx.exception.is_retryable)


class TestPollSignalRepository(unittest.IsolatedAsyncioTestCase):

    async def test_eligibility(self):
        conn = FakeConnection(row={"poll_id": "P1", "participant_count": 25, "status": "completed"})
        eligibility = await PollSignalRepository(FakePool(conn)).get_eligibility("P1")

        self.assertEqual(eligibility.participant_count, 25)
        self.assertEqual(eligibility.status, "completed")

    async def test_unknown_poll(self):
        conn = FakeConnection(row=None)
        self.assertIsNone(await PollSignalRepository(FakePool(conn)).get_eligibility("nope"))

    async def test_statements_with_vote_counts(self):
        conn = FakeConnection(rows=[{
            "id": "s1",
            "poll_id": "P1",
            "text": "More bike lanes",
            "pinned": False,
            "created_at": datetime(2025, 5, 1, tzinfo=timezone.utc),
            "agree_count": 4,
            "disagree_count": 1,
            "pass_count": 2,
        }])
        statements = await PollSignalRepository(FakePool(conn)).get_statements("P1", ["s1"])

        self.assertEqual(statements["s1"].vote_count, 7)

    async def test_malformed_classification_skipped(self):
        conn = FakeConnection(rows=[
            {
                "poll_id": "P1",
                "statement_id": "s1",
                "classification_type": "bridge",
                "group_agreements": {"0": 0.7, "1": 0.6},
            },
            {
                "poll_id": "P1",
                "statement_id": "s2",
                "classification_type": "mystery",
                "group_agreements": {},
            },
        ])
        classifications = await PollSignalRepository(FakePool(conn)).get_classifications(
            "P1", ["s1", "s2"]
        )

        self.assertEqual(list(classifications), ["s1"])
        self.assertEqual(classifications["s1"].group_agreements, {0: 0.7, 1: 0.6})


class TestDatabase(unittest.IsolatedAsyncioTestCase):

    def test_jsonb_encoder_dumps_pydantic_models(self):
        components = ClusteringComponents(
            predictiveness=0.8,
            consensus_potential=0.5,
            recency_boost=1.0,
            pass_rate_penalty=1.0,
        )
        encoded = json.loads(_jsonb_encoder(components))
        self.assertEqual(encoded["mode"], "clustering")
        self.assertIsNone(encoded["classification"])

    def test_jsonb_encoder_rejects_unknown_objects(self):
        with self.assertRaises(TypeError):
            _jsonb_encoder(object())

    async def test_repositories_share_pool(self):
        pool = FakePool(FakeConnection())
        db = Database(pool)
        self.assertIs(db.weights.pool, pool)
        self.assertIs(db.polls.pool, pool)

    async def test_init_schema_runs_sql_file(self):
        conn = FakeConnection(status="CREATE TABLE")
        await Database(FakePool(conn)).init_schema()

        method, query, _ = conn.calls[0]
        self.assertEqual(method, "execute")
        self.assertIn("CREATE TABLE IF NOT EXISTS statement_weights", query)

    async def test_create_wraps_connection_failure(self):
        with mock.patch(
            "database.db_postgres.asyncpg.create_pool",
            new=mock.AsyncMock(side_effect=OSError("no route to host")),
        ):
            with self.assertRaises(DatabaseConnectionError):
                await Database.create(dsn="postgresql://nobody@nowhere/db")
