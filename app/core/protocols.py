"""
Protocol definitions for external collaborators.

Protocols define contracts that collaborators must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (depend on abstractions, not concretions)
- Easy mocking in tests

Available Protocols:
    BlobStore: Upload a file and get back a retrievable reference

Usage:
    from core.protocols import BlobStore

    def attach_proof(store: BlobStore, path: str, upload) -> str:
        stored_name = store.save(path, upload)
        return store.url(stored_name)

    # Django's default_storage satisfies BlobStore without inheriting from it.

Note:
    - Protocols are primarily for type checking
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class BlobStore(Protocol):
    """
    Protocol for blob storage backends.

    Matches the subset of Django's Storage API used for uploaded
    payment proofs.
    """

    def save(self, name: str, content: Any, max_length: int | None = None) -> str:
        """
        Store content under name.

        Returns:
            The name actually used (backends may rename on collision)
        """
        ...

    def url(self, name: str) -> str:
        """Return a retrievable URL for a stored name."""
        ...

    def delete(self, name: str) -> None:
        """Delete a stored name."""
        ...
