"""Provider Mirror: verified caching of Terraform providers for root groups.

  - Version mirrors record the signature-verified SHA256SUMS digest table
    of an upstream provider version
  - Platform mirrors admit (os, arch) packages whose streamed SHA-256
    matches that table
  - Per-group quotas, activity events and optimistic locking in a SQLite
    catalog
  - Presigned package URLs in Terraform's network mirror protocol shape
"""

__version__ = "0.1.0"
__description__ = "Terraform provider mirror with signature-verified package admission"

from providermirror.core.mirror_service import MirrorService
from providermirror.cli.app import app as cli

__all__ = ["MirrorService", "cli", "__version__"]
