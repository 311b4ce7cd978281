# Tests Package
"""
Test suite for the alert-generation core.

- core/: models, runner
- coordinators/: scheduler cycles, triggers, lifecycle
- deduplication/, services/, policy/, persistence/, agents/: component tests
- api/: HTTP surface
"""
