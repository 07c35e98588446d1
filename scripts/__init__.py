"""Command line tools for browsing and summarizing synced notes."""

# Expose the note_sync namespace for convenience when these utilities are
# used as a package.
from . import note_sync  # noqa: F401  (re-exported for package discovery)

__all__ = ["note_sync"]
