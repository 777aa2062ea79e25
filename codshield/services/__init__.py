"""Business logic services used by handlers.

Services are wired lazily by ``codshield.services.registry`` so importing a
handler never opens a database or AWS connection.
"""
