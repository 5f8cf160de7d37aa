"""Command modules for the ankra CLI. Each exposes register_commands(subparsers)."""
