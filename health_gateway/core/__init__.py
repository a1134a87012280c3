"""Core package for shared gateway functionality.

This package provides the foundational components used across all layers
of the gateway:

- **config**: Centralized configuration management with environment support
- **exceptions**: Structured exception hierarchy with HTTP status codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging with cloud provider integrations
- **types**: Type aliases for better code clarity
"""
