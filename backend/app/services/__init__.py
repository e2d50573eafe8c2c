# Services package init
"""
Point Cloud Annotator Backend: Services Layer
===============================================

Service Inventory:
    - AnnotationStore: durable CRUD over the annotations table (SQLAlchemy)
    - AnnotationCache (abstract): cache-aside contract
        - RedisAnnotationCache:    production backend (redis.asyncio)
        - InMemoryAnnotationCache: process-local backend for development/tests
        - NullAnnotationCache:     always-miss backend (CACHE_BACKEND=none)
    - AnnotationService: validation plus cache-aside orchestration over the two
    - ProxyService: gateway-side HTTP relay to the handler (httpx)

Services are constructed once in the lifespan and stored on app.state; routes
receive them through app/dependencies.py.
"""
