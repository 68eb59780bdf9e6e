"""Dotfiles installer (Python-first, state-driven).

Core design goals:
- One declarative manifest per dotfiles repository
- Idempotent reruns driven by persisted installation state
- Partial failure never blocks the remaining work
- Symlinking and git transport delegated to stow and git
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
