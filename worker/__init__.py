"""
Workers that act on the registry through the distribution engine.

Exports SeedingCoordinator (submits torrents, drains engine events) and
GarbageCollector (retires torrents the authority no longer wants).
"""

from worker.collector import CollectionResult, GarbageCollector
from worker.seeder import SeedingCoordinator, SeedingResult

__all__ = ['SeedingCoordinator', 'SeedingResult', 'GarbageCollector', 'CollectionResult']
