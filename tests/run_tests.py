#!/usr/bin/env python3
"""
fabkit Test Runner

Discovers the test_*.py modules next to this file and runs them, optionally
under coverage measurement of the fabkit package.
"""

import argparse
import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).parent
sys.path.insert(0, str(TESTS_DIR.parent))


def discover(pattern: str = "test_*.py") -> unittest.TestSuite:
    return unittest.TestLoader().discover(str(TESTS_DIR), pattern=pattern,
                                          top_level_dir=str(TESTS_DIR.parent))


def run(pattern: str, with_coverage: bool) -> bool:
    cov = None
    if with_coverage:
        import coverage
        cov = coverage.Coverage(source=['fabkit'])
        cov.start()

    suite = discover(pattern)
    print(f"🧪 Running {suite.countTestCases()} fabkit tests")
    result = unittest.TextTestRunner(verbosity=2).run(suite)

    if cov is not None:
        cov.stop()
        cov.save()
        cov.report(show_missing=True)

    return result.wasSuccessful()


def main():
    parser = argparse.ArgumentParser(description='fabkit Test Runner')
    parser.add_argument('--coverage', action='store_true',
                        help='Measure coverage of the fabkit package (pip install .[test])')
    parser.add_argument('--pattern', default='test_*.py',
                        help='Only run modules matching pattern (e.g. "test_operation*")')
    args = parser.parse_args()

    success = run(args.pattern, args.coverage)
    print("🎉 All tests passed" if success else "💥 Some tests failed")
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
