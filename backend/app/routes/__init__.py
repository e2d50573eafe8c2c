# Routes package init
"""
Point Cloud Annotator Backend: API Routes Package
===================================================

Route Inventory:
    - annotations.py: /api/v1/annotations CRUD        (handler role)
    - proxy.py:       /api/v1/annotations[/...] relay (gateway role)
    - health.py:      GET /health                     (both roles)

Routes stay thin: parse the request, make one service call, wrap the result
in the {"data": ...} envelope. Errors are raised, never formatted here.
"""
