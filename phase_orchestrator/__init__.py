"""
Phase Orchestrator - Dependency-aware coordination of domain agents.

This package drives development phases through their domains, running
independent domains concurrently, tracking task progress and collecting
blockers and rollback instructions along the way.
"""

__version__ = "0.1.0"
