"""
HTTP routes.

Each module exposes a `router`; main.create_app() mounts them all.
Shared services are read from request.app.state.
"""
