"""Environment prefixes: installation, revalidation and activation."""

from .activation import get_task_env
from .installer import InstalledRecord, MetadataInstaller, PackageInstaller
from .materialize import EnvironmentMaterializer, MaterializeReport, Prefix

__all__ = [
    "EnvironmentMaterializer",
    "InstalledRecord",
    "MaterializeReport",
    "MetadataInstaller",
    "PackageInstaller",
    "Prefix",
    "get_task_env",
]
