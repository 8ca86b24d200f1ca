"""Voice practice session backend.

This package contains the FastAPI routes and services that sit between the
web app and LiveKit during an English tutoring or interview practice call.
Subpackages include:
- api: FastAPI route definitions
- core: configuration, logging and timer profiles
- services: data channel decoding, transcript aggregation, session timer,
  LiveKit and sessions API integrations
- schemas: Pydantic models
"""

__all__ = [
    "api",
    "core",
    "services",
    "schemas",
]

__version__ = "1.0.0"
