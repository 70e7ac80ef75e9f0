"""Java-hosted compiler plugin resolution and launcher assembly."""

from .assembler import PluginAssembler, detect_data_model, find_jvm_location
from .resolve import ArtifactResolver, MavenRepositoryResolver, StaticResolver

__all__ = [
    "ArtifactResolver",
    "MavenRepositoryResolver",
    "PluginAssembler",
    "StaticResolver",
    "detect_data_model",
    "find_jvm_location",
]
