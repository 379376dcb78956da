"""
fabkit Engine Module

Network lifecycle state machine and the parallel benchmark runner.
"""

from .lifecycle import LifecycleOrchestrator
from .benchmark import BenchmarkRunner, random_key

__all__ = ['LifecycleOrchestrator', 'BenchmarkRunner', 'random_key']
