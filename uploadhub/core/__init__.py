"""
Core upload logic.

This package is framework-agnostic: it does not import FastAPI, httpx or
any backend SDK, so the registry and models can be tested in isolation.
"""
