"""
Service layer

Each module exposes a service class and a module-level singleton, e.g.
``from alumni.services.posts import post_service``. Submodules are not
imported here: the queued jobs in ``tasks`` and the services import each
other.
"""
