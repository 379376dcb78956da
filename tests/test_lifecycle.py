"""
Unit tests for the LifecycleOrchestrator class.

The operation graph and the docker manager are mocks; the artifact store
is real and points at a temporary directory so the data directory check
is exercised on disk.
"""

import unittest
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, call

sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit.core.artifact_store import ArtifactStore
from fabkit.core.config import FabkitConfig
from fabkit.core.context import Context
from fabkit.core.errors import OperationCancelled, ValidationError
from fabkit.core.types import NetworkState
from fabkit.engine.lifecycle import LifecycleOrchestrator
from fabkit.fabric.docker_manager import FabricDockerManager
from fabkit.fabric.operations import (
    CI_START_TARGETS, EXPLORER_TARGETS, FRESH_START_TARGETS,
    RESTART_TARGETS, TEARDOWN_TARGETS, register_artifacts,
)


class TestLifecycleOrchestrator(unittest.TestCase):
    """Test cases for LifecycleOrchestrator"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = FabkitConfig(root=Path(self.tmp.name))
        self.context = Context(self.config)
        self.graph = MagicMock()
        self.graph.execute.return_value = []
        self.docker = MagicMock(spec=FabricDockerManager)
        self.docker.is_fabric_running.return_value = False
        self.store = register_artifacts(ArtifactStore(), self.config)
        self.confirm = MagicMock(return_value=False)

    def tearDown(self):
        self.tmp.cleanup()

    def orchestrator(self, assume_yes=False):
        return LifecycleOrchestrator(self.context, self.graph, self.docker, self.store,
                                     confirm=self.confirm, assume_yes=assume_yes)

    def create_data(self):
        self.config.data_path.mkdir(parents=True)
        (self.config.data_path / 'ledger.db').write_text("blocks")

    def executed_targets(self):
        return [(c.args[0], c.kwargs.get('force')) for c in self.graph.execute.call_args_list]

    def test_start_without_data_never_prompts(self):
        self.orchestrator().start()

        self.confirm.assert_not_called()
        self.assertEqual(self.executed_targets(), [
            (TEARDOWN_TARGETS, None),
            (FRESH_START_TARGETS, None),
        ])

    def test_start_with_data_and_restart_accepted(self):
        self.create_data()
        self.confirm.return_value = True

        self.orchestrator().start()

        self.confirm.assert_called_once()
        self.assertEqual(self.executed_targets(), [(RESTART_TARGETS, None)])
        self.assertTrue(self.config.data_path.exists())

    def test_declined_restart_and_declined_fresh_start(self):
        self.create_data()
        self.confirm.side_effect = [False, False]

        with self.assertRaises(OperationCancelled):
            self.orchestrator().start()

        self.assertEqual(self.confirm.call_count, 2)
        self.graph.execute.assert_not_called()
        self.assertTrue(self.config.data_path.exists())

    def test_declined_restart_then_confirmed_fresh_start(self):
        self.create_data()
        self.confirm.side_effect = [False, True]

        self.orchestrator().start()

        self.assertEqual(self.confirm.call_count, 2)
        self.assertFalse(self.config.data_path.exists())
        self.assertEqual(self.executed_targets(), [
            (TEARDOWN_TARGETS, None),
            (FRESH_START_TARGETS, True),
        ])

    def test_assume_yes_reuses_data(self):
        self.create_data()

        self.orchestrator(assume_yes=True).start()

        self.confirm.assert_not_called()
        self.assertEqual(self.executed_targets(), [(RESTART_TARGETS, None)])

    def test_ci_start(self):
        self.create_data()

        self.orchestrator().start(ci=True)

        self.confirm.assert_not_called()
        self.assertEqual(self.executed_targets(), [(CI_START_TARGETS, None)])

    def test_restart_without_data(self):
        with self.assertRaises(ValidationError) as cm:
            self.orchestrator().restart()

        self.assertIn("Run a normal start", str(cm.exception))
        self.graph.execute.assert_not_called()

    def test_stop_offers_data_deletion(self):
        self.create_data()
        self.confirm.return_value = True

        self.orchestrator().stop()

        self.confirm.assert_called_once_with("Do you wish to remove this data?", False)
        self.assertFalse(self.config.data_path.exists())

    def test_stop_keeps_declined_data(self):
        self.create_data()

        self.orchestrator().stop()

        self.assertTrue(self.config.data_path.exists())
        self.assertEqual(self.executed_targets(), [(TEARDOWN_TARGETS, None)])

    def test_stop_keep_data_without_prompt(self):
        self.create_data()

        self.orchestrator().stop(remove_data=False)

        self.confirm.assert_not_called()
        self.assertTrue(self.config.data_path.exists())

    def test_explore_requires_running_network(self):
        with self.assertRaises(ValidationError):
            self.orchestrator().explore()
        self.graph.execute.assert_not_called()

        self.docker.is_fabric_running.return_value = True
        self.orchestrator().explore()
        self.assertEqual(self.executed_targets(), [(EXPLORER_TARGETS, None)])

    def test_state(self):
        orchestrator = self.orchestrator()
        self.assertEqual(orchestrator.state(), NetworkState.UNINITIALIZED)

        self.create_data()
        self.assertEqual(orchestrator.state(), NetworkState.STOPPED)

        self.docker.is_fabric_running.return_value = True
        self.assertEqual(orchestrator.state(), NetworkState.RUNNING)

    def test_install(self):
        self.docker.pull_images.return_value = ['golang:1.13']

        self.assertEqual(self.orchestrator().install(), ['golang:1.13'])

        self.assertEqual(self.docker.method_calls[:2], [call.check_dependencies(), call.pull_images()])

    def test_no_confirm_callback_declines(self):
        self.create_data()
        orchestrator = LifecycleOrchestrator(self.context, self.graph, self.docker, self.store)

        with self.assertRaises(OperationCancelled):
            orchestrator.start()


if __name__ == '__main__':
    unittest.main()
