"""Test suite for oracle-orchestrator."""
