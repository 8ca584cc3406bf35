"""
Matchmaker: perfiles de usuario, score de compatibilidad y matches.

Recalcula los matches de un usuario cada vez que su perfil cambia,
ya sea por la API o por eventos del event log.
"""

__version__ = "0.1.0"
