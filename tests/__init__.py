"""
memweave Test Suite.

- unit/: Component tests (stores, embeddings, classification, selector, container)
- integration/: Orchestrator and named-operation flows over the in-process stores
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
"""
