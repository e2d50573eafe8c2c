# Middleware package init
"""
Point Cloud Annotator Backend: Middleware Package
===================================================

What:  Cross-cutting concerns applied to every request, in both roles.

Middleware Chain (order matters):
    Request → [Request ID] → [Logging] → [GZip, handler only] → [CORS] → Route

    1. Request ID first, so every later log line can be correlated
    2. Logging sees the final status code and total duration
"""
