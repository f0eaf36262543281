"""
Test Suite for WorkGraph Core

- graph model and JSONL persistence
- task lifecycle transitions
- readiness / blocker / cost queries
- structural checks
- trace function storage and instantiation
"""
