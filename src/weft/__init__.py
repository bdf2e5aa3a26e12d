"""
Weft - workflow orchestration for generative-model capabilities.

- weft.core: cross-cutting primitives (logging, errors, cache, settings)
- weft.orchestration: Pipeline, Parallel and Router executors
"""

__version__ = "0.1.0"
