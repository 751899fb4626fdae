"""
Guildhall Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no database)
- tests/integration/   : Service tests against a throwaway SQLite database
- tests/factories.py   : Helpers that seat guilds, parties and posts

Testing Philosophy
------------------
- Unit tests: fast, isolated, cover policy, validation and helpers
- Integration tests: drive the services end to end through the container
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
