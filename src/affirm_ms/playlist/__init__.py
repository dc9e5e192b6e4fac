"""
Playlist assembly.

    - models.py: PlaylistManifest / ManifestLine (shared with the player)
    - assembler.py: PlaylistAssembler
"""
from .models import ManifestLine, PlaylistManifest

__all__ = ["ManifestLine", "PlaylistManifest"]
