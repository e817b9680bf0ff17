"""
Ping Service package for Ping Fleet.

Each ping instance fires one request per second at the Pong service, at a
phase offset derived from its machine ID, and only when the host-wide rate
limiter admits it.

Structure:
- app.main: FastAPI app, status routes, and scheduler lifecycle wiring.
- app.ratelimit: Cross-process fixed-window limiter over a shared file.
- app.scheduling: Phase-offset periodic trigger.
- app.adapters: HTTP client for the Pong service.
- app.domain: The per-tick attempt and its outcome history.
"""
