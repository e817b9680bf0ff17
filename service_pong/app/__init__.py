"""
Pong Service package for Ping Fleet.

Serves GET /ping behind a single-permit gate: one request does its
simulated work at a time and every concurrent request is answered with
429 Too Many Requests.

- app.main: Application entrypoint that wires routes.
- app.gate: The admission gate.
"""
