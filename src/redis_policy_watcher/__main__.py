# redis_policy_watcher/__main__.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""
Module entry point for the policy watcher CLI.

Allows running with: python -m redis_policy_watcher listen --channel /casbin
"""

from .main import main

if __name__ == "__main__":
    main()
