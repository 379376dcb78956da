"""
Unit tests for the OperationGraph class.

Tests dependency resolution, deterministic ordering, idempotent skipping
and abort-on-failure semantics.
"""

import unittest
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit.core.artifact_store import ArtifactStore
from fabkit.core.config import FabkitConfig
from fabkit.core.context import Context
from fabkit.core.errors import OrchestrationError, ValidationError
from fabkit.core.operation_graph import OperationGraph
from fabkit.core.types import OutcomeStatus
from tests import FakeRunner, failed_result


class TestOperationGraph(unittest.TestCase):
    """Test cases for OperationGraph"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.context = Context(FabkitConfig(root=self.root))
        self.runner = FakeRunner()
        self.store = ArtifactStore()
        self.store.add('cryptos', self.root / 'crypto-config')
        self.store.add('genesis', self.root / 'genesis')

    def tearDown(self):
        self.tmp.cleanup()

    def generator(self, name, command):
        def run(ctx):
            self.store.prepare(name)
            result = self.runner.run(command)
            if result.ok:
                self.store.mark_complete(name)
            return result
        return run

    def command(self, name):
        return lambda ctx: self.runner.run(name)

    def build_graph(self):
        graph = OperationGraph()
        graph.add('generate_cryptos', self.generator('cryptos', 'cryptogen'),
                  idempotent=True, already_satisfied=lambda ctx: self.store.exists('cryptos'))
        graph.add('generate_genesis', self.generator('genesis', 'configtxgen'),
                  dependencies=['generate_cryptos'], idempotent=True,
                  already_satisfied=lambda ctx: self.store.exists('genesis'))
        graph.add('start', self.command('compose-up'), dependencies=['generate_genesis'])
        graph.add('install', self.command('install'), dependencies=['start'])
        graph.add('instantiate', self.command('instantiate'), dependencies=['install'])
        return graph

    def test_resolve_includes_transitive_dependencies(self):
        graph = self.build_graph()

        self.assertEqual(
            graph.resolve(['install']),
            ['generate_cryptos', 'generate_genesis', 'start', 'install'],
        )

    def test_order_is_deterministic(self):
        graph = OperationGraph()
        for name in ['e', 'd', 'c', 'b', 'a']:
            graph.add(name, self.command(name))
        graph.add('z', self.command('z'), dependencies=['a', 'e'])

        first = graph.order()
        for _ in range(20):
            self.assertEqual(graph.order(), first)
        # Independent nodes keep declaration order
        self.assertEqual(first, ['e', 'd', 'c', 'b', 'a', 'z'])

    def test_dependency_declared_later(self):
        graph = OperationGraph()
        graph.add('join', self.command('join'), dependencies=['create'])
        graph.add('create', self.command('create'))

        self.assertEqual(graph.resolve(['join']), ['create', 'join'])

    def test_cycle_is_rejected(self):
        graph = OperationGraph()
        graph.add('a', self.command('a'), dependencies=['b'])
        graph.add('b', self.command('b'), dependencies=['a'])

        with self.assertRaises(ValueError):
            graph.resolve(['a'])

    def test_unknown_dependency_is_rejected(self):
        graph = OperationGraph()
        graph.add('a', self.command('a'), dependencies=['missing'])

        with self.assertRaises(ValidationError):
            graph.resolve(['a'])
        with self.assertRaises(ValidationError):
            graph.resolve(['nope'])

    def test_duplicate_registration(self):
        graph = OperationGraph()
        graph.add('a', self.command('a'))

        with self.assertRaises(ValueError):
            graph.add('a', self.command('a'))

    def test_idempotent_nodes_skipped_on_second_run(self):
        graph = self.build_graph()
        targets = ['generate_genesis']

        first = graph.execute(targets, self.context)
        self.assertEqual([o.status for o in first], [OutcomeStatus.COMPLETED] * 2)
        calls_after_first = self.runner.calls
        self.assertEqual(calls_after_first, 2)

        second = graph.execute(targets, self.context)
        self.assertTrue(all(o.skipped for o in second))
        self.assertEqual(self.runner.calls, calls_after_first)

    def test_force_reruns_idempotent_nodes(self):
        graph = self.build_graph()
        graph.execute(['generate_genesis'], self.context)

        outcomes = graph.execute(['generate_genesis'], self.context, force=True)

        self.assertEqual([o.status for o in outcomes], [OutcomeStatus.COMPLETED] * 2)
        self.assertEqual(self.runner.calls, 4)

    def test_context_force_is_default(self):
        graph = self.build_graph()
        graph.execute(['generate_cryptos'], self.context)
        self.context.force = True

        outcomes = graph.execute(['generate_cryptos'], self.context)

        self.assertFalse(outcomes[0].skipped)

    def test_failure_aborts_and_names_operation(self):
        self.runner.responder = lambda argv: failed_result(argv) if argv[0] == 'install' else None
        graph = self.build_graph()

        with self.assertRaises(OrchestrationError) as cm:
            graph.execute(['instantiate'], self.context)

        error = cm.exception
        self.assertEqual(error.operation, 'install')
        self.assertIn("Operation 'install' failed", str(error))
        self.assertIn("Error: boom", str(error))
        self.assertEqual(error.completed, ['generate_cryptos', 'generate_genesis', 'start'])
        self.assertNotIn(('instantiate',), self.runner.history)
        self.assertEqual(error.outcomes[-1].status, OutcomeStatus.FAILED)

    def test_run_log_allows_resume(self):
        self.runner.responder = lambda argv: failed_result(argv) if argv[0] == 'install' else None
        graph = self.build_graph()
        with self.assertRaises(OrchestrationError):
            graph.execute(['instantiate'], self.context)
        self.assertEqual(self.context.last_completed(), 'start')

        self.runner.responder = None
        self.runner.history.clear()
        resumed = Context(self.context.config)
        outcomes = graph.execute(['instantiate'], resumed)

        self.assertEqual([o.name for o in outcomes if o.skipped], ['generate_cryptos', 'generate_genesis'])
        self.assertEqual(self.runner.history, [('compose-up',), ('install',), ('instantiate',)])
        self.assertTrue(resumed.has_run('instantiate'))

    def test_fabkit_error_in_operation_is_wrapped(self):
        def broken(ctx):
            raise ValidationError("Channel name missing")

        graph = OperationGraph()
        graph.add('create_channel', broken)

        with self.assertRaises(OrchestrationError) as cm:
            graph.execute(['create_channel'], self.context)

        self.assertEqual(cm.exception.operation, 'create_channel')
        self.assertIsInstance(cm.exception.__cause__, ValidationError)

    def test_os_error_in_operation_is_wrapped(self):
        def unwritable(ctx):
            raise PermissionError(13, "Permission denied", "crypto-config")

        graph = OperationGraph()
        graph.add('generate_cryptos', unwritable)

        with self.assertRaises(OrchestrationError) as cm:
            graph.execute(['generate_cryptos'], self.context)

        self.assertEqual(cm.exception.operation, 'generate_cryptos')
        self.assertIn("Permission denied", str(cm.exception))
        self.assertEqual(cm.exception.outcomes[-1].status, OutcomeStatus.FAILED)

    def test_operation_returning_nothing_completes(self):
        graph = OperationGraph()
        graph.add('noop', lambda ctx: None)

        outcomes = graph.execute(['noop'], self.context)

        self.assertEqual(outcomes[0].status, OutcomeStatus.COMPLETED)
        self.assertEqual(outcomes[0].results, [])


if __name__ == '__main__':
    unittest.main()
