"""
Test Suite

Tests for the DocuFlow submission workflow service.

    tests/
    ├── conftest.py                   # Shared fixtures (actors, in-memory stores)
    ├── test_transition_resolver.py   # State table
    ├── test_permission_guard.py      # Role and department rules
    ├── test_engine.py                # Transitions, history, emission
    ├── test_concurrency.py           # Racing transitions
    ├── test_submission_repo.py       # MongoDB repository with mocked collections
    ├── test_submission_service.py    # Draft lifecycle and scoped reads
    ├── test_notifications.py         # Outbox producer and dispatcher
    └── test_api.py                   # HTTP layer

To run tests:
    pytest tests/
"""
