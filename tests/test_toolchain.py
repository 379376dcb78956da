"""
Unit tests for the ChaincodeToolchain and its Go executors.
"""

import unittest
import sys
import tempfile
import zipfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit.core.config import FabkitConfig
from fabkit.core.errors import OrchestrationError, ValidationError
from fabkit.fabric.toolchain import ChaincodeToolchain, DockerGoExecutor, LocalGoExecutor
from tests import FakeRunner, failed_result


class TestChaincodeToolchain(unittest.TestCase):
    """Test cases for ChaincodeToolchain"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.config = FabkitConfig(root=self.root)
        self.chaincode = self.root / 'chaincode' / 'mychaincode'
        self.chaincode.mkdir(parents=True)
        (self.chaincode / 'main.go').write_text("package main\n")

    def tearDown(self):
        self.tmp.cleanup()

    def toolchain(self, runner, executor_cls=None):
        executor = executor_cls(runner, self.config) if executor_cls else None
        return ChaincodeToolchain(runner, self.config, executor=executor)

    def test_executor_selection(self):
        with_go = self.toolchain(FakeRunner(binaries=('go', 'docker')))
        without_go = self.toolchain(FakeRunner(binaries=('docker',)))

        self.assertIsInstance(with_go.executor, LocalGoExecutor)
        self.assertIsInstance(without_go.executor, DockerGoExecutor)

    def test_missing_chaincode(self):
        runner = FakeRunner()
        toolchain = self.toolchain(runner, LocalGoExecutor)

        with self.assertRaises(ValidationError):
            toolchain.test(None)
        with self.assertRaises(ValidationError) as cm:
            toolchain.test('unknown')
        self.assertIn("path does not exist", str(cm.exception))
        self.assertEqual(runner.calls, 0)

    def test_local_test_runs_in_chaincode_dir(self):
        runner = FakeRunner()
        results = self.toolchain(runner, LocalGoExecutor).test('mychaincode')

        self.assertTrue(all(r.ok for r in results))
        self.assertEqual(runner.history, [('go', 'test', './...', '-v')])
        self.assertEqual(Path(runner.workdirs[0]), self.chaincode)
        self.assertEqual(runner.envs[0]['CGO_ENABLED'], '0')

    def test_docker_executor_runs_one_container(self):
        runner = FakeRunner()
        self.toolchain(runner, DockerGoExecutor).dep_install('mychaincode')

        self.assertEqual(runner.calls, 1)
        argv = list(runner.history[0])
        self.assertEqual(argv[:3], ['docker', 'run', '--rm'])
        self.assertIn('golang:1.13', argv)
        self.assertIn('/usr/src/myapp/mychaincode', argv)
        self.assertEqual(
            argv[-1],
            "go mod init mychaincode && go get ./... && go mod tidy && go mod vendor",
        )

    def test_dep_update_keeps_existing_go_mod(self):
        (self.chaincode / 'go.mod').write_text("module mychaincode\n")
        (self.chaincode / 'vendor').mkdir()
        runner = FakeRunner()

        self.toolchain(runner, LocalGoExecutor).dep_update('mychaincode')

        self.assertEqual(runner.history[0], ('go', 'get', '-u=patch', './...'))
        self.assertFalse((self.chaincode / 'vendor').exists())

    def test_local_executor_stops_at_first_failure(self):
        runner = FakeRunner(responder=lambda argv: failed_result(argv) if argv[1] == 'get' else None)

        results = self.toolchain(runner, LocalGoExecutor).dep_install('mychaincode')

        self.assertEqual([r.command[:2] for r in results], [('go', 'mod'), ('go', 'get')])
        self.assertFalse(results[-1].ok)

    def test_build_removes_binary(self):
        binary = self.chaincode / 'mychaincode'

        def compile_binary(argv):
            binary.write_text("ELF")

        runner = FakeRunner(responder=compile_binary)
        self.toolchain(runner, LocalGoExecutor).build('mychaincode')

        self.assertEqual(runner.history[0][:2], ('go', 'build'))
        self.assertFalse(binary.exists())

    def test_pack_creates_archive(self):
        archive = self.toolchain(FakeRunner(), LocalGoExecutor).pack('mychaincode')

        self.assertEqual(archive.parent, self.root / 'dist')
        self.assertTrue(archive.name.startswith('mychaincode.'))
        self.assertEqual(archive.suffix, '.zip')
        with zipfile.ZipFile(archive) as zf:
            self.assertIn('main.go', zf.namelist())

    def test_pack_fails_when_dependencies_fail(self):
        runner = FakeRunner(responder=failed_result)

        with self.assertRaises(OrchestrationError) as cm:
            self.toolchain(runner, LocalGoExecutor).pack('mychaincode')

        self.assertEqual(cm.exception.operation, 'dep_install')
        self.assertFalse((self.root / 'dist').exists())


if __name__ == '__main__':
    unittest.main()
