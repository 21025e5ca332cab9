# src/fxpad/adapters/__init__.py
"""
Adapters Layer - External Interfaces

This package contains all adapters for external systems:
- Providers (exchange-rate APIs)
- Notifications (local, Telegram)
- Persistence (key-value storage)
- Formatting (output)
"""

__all__ = []
