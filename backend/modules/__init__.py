"""
Feature modules for the identity bridge backend.

Each module is self-contained with its own:
- interfaces.py: Protocol definitions for the module's ports
- models.py: Pydantic models and value objects
- exceptions.py: Module-specific exceptions
- implementation modules (service, repository, registry, transport, ...)

Modules communicate through interfaces, not concrete implementations.
"""
