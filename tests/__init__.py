"""Test suite for task-orchestrator."""
