"""Core shared logic for signal generation, indicators, and subscription rules.

This package contains pure business logic with no I/O dependencies
(no database, Redis, or network access). The application layer (app/)
injects stores and clocks into it.
"""
