"""Application package for the language-learning backend.

This package exposes the service, repository and model modules used by
the FastAPI application: accounts and lessons (`services`), lesson
completion (`completion`) and ranking (`leaderboard`). Individual
modules contain the concrete implementations and documentation.
"""
