"""kvfacade: async Redis facade with a uniform, error-classified operation set.

This package contains:
- store: the facade, connection lifecycle and error taxonomy
- models: Pydantic models (scored members, operation events)
- config: Configuration management
- observability: Structured logging
"""

__version__ = "0.1.0"
