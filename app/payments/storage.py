"""
Storage for manual payment proof uploads.

Proofs (M-Pesa message screenshots, bank slips) are checked by content
with python-magic, then written through any BlobStore; Django's
default_storage is used unless another store is given.

Path layout:
    <MANUAL_PAYMENT_PROOF_DIR>/<claimant_id>/<timestamp>.<ext>

Usage:
    from payments.storage import ProofStorage

    proof = ProofStorage().store(request.user.id, request.FILES["proof"])
    ...
    ProofStorage().delete(proof.stored_name)  # claim was refused
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import magic
from django.conf import settings
from django.core.files.storage import default_storage
from django.utils import timezone

from payments.exceptions import PaymentValidationError

if TYPE_CHECKING:
    from django.core.files.uploadedfile import UploadedFile

    from core.protocols import BlobStore

logger = logging.getLogger(__name__)

# Detected MIME type -> extensions a proof of that type may carry.
# The first extension is the one used for the stored name.
ALLOWED_PROOF_TYPES: dict[str, tuple[str, ...]] = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/webp": ("webp",),
    "image/heic": ("heic",),
    "application/pdf": ("pdf",),
}

# Bytes read for libmagic detection
HEADER_BYTES = 2048


@dataclass(frozen=True)
class StoredProof:
    """A proof written to the blob store."""

    url: str
    file_name: str
    stored_name: str
    mime_type: str


class ProofStorage:
    """Validates and stores proof-of-transfer files."""

    def __init__(self, store: BlobStore | None = None):
        self.blob_store = store or default_storage
        self._magic = magic.Magic(mime=True)

    @staticmethod
    def max_bytes() -> int:
        return getattr(settings, "MANUAL_PAYMENT_PROOF_MAX_BYTES", 5 * 1024 * 1024)

    @staticmethod
    def extension_for(file_name: str) -> str:
        return os.path.splitext(file_name or "")[1].lstrip(".").lower()

    def build_path(self, claimant_id, extension: str) -> str:
        directory = getattr(settings, "MANUAL_PAYMENT_PROOF_DIR", "payment-proofs")
        stamp = timezone.now().strftime("%Y%m%d%H%M%S%f")
        return f"{directory}/{claimant_id}/{stamp}.{extension}"

    def detect_mime_type(self, upload: UploadedFile) -> str | None:
        """MIME type of the upload's content, or None when libmagic cannot tell."""
        upload.seek(0)
        header = upload.read(HEADER_BYTES)
        upload.seek(0)
        if not header:
            return None
        try:
            return self._magic.from_buffer(header)
        except magic.MagicException:
            logger.warning("Could not detect proof file type", exc_info=True)
            return None

    def validate(self, upload: UploadedFile) -> str:
        """
        Check size and content type of an upload.

        The type is read from the file's bytes; the file name's extension
        must agree with it.

        Returns:
            The detected MIME type

        Raises:
            PaymentValidationError: Empty, too large, unsupported or
                mislabelled file
        """
        if not upload.size:
            raise PaymentValidationError(
                "Proof file is empty",
                error_code="INVALID_PROOF_FILE",
            )
        if upload.size > self.max_bytes():
            raise PaymentValidationError(
                f"Proof file must be at most {self.max_bytes() // (1024 * 1024)} MB",
                error_code="PROOF_FILE_TOO_LARGE",
                details={"size": upload.size, "max_bytes": self.max_bytes()},
            )

        mime_type = self.detect_mime_type(upload)
        if mime_type not in ALLOWED_PROOF_TYPES:
            raise PaymentValidationError(
                "Proof must be an image or PDF",
                error_code="INVALID_PROOF_FILE",
                details={"detected_type": mime_type, "allowed": sorted(ALLOWED_PROOF_TYPES)},
            )

        extension = self.extension_for(upload.name)
        if extension not in ALLOWED_PROOF_TYPES[mime_type]:
            logger.warning(
                "Proof file name does not match its content",
                extra={"file_name": upload.name, "detected_type": mime_type},
            )
            raise PaymentValidationError(
                "Proof file extension does not match its content",
                error_code="PROOF_TYPE_MISMATCH",
                details={"extension": extension, "detected_type": mime_type},
            )
        return mime_type

    def store(self, claimant_id, upload: UploadedFile) -> StoredProof:
        """Validate and save an upload."""
        mime_type = self.validate(upload)
        extension = ALLOWED_PROOF_TYPES[mime_type][0]
        stored_name = self.blob_store.save(self.build_path(claimant_id, extension), upload)
        url = self.blob_store.url(stored_name)
        logger.info(
            "Stored manual payment proof",
            extra={
                "claimant_id": str(claimant_id),
                "stored_name": stored_name,
                "mime_type": mime_type,
                "size": upload.size,
            },
        )
        return StoredProof(url=url, file_name=upload.name, stored_name=stored_name, mime_type=mime_type)

    def delete(self, stored_name: str) -> None:
        """Remove a proof whose claim was never recorded."""
        self.blob_store.delete(stored_name)
        logger.info("Deleted orphaned manual payment proof", extra={"stored_name": stored_name})
