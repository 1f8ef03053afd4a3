from .artifact_store import ArtifactStore, ServedArtifact

__all__ = ["ArtifactStore", "ServedArtifact"]
