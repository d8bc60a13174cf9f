"""Chunk reassembly: read content-addressed chunks in order and concatenate them.

Chunks are read sequentially, one backend round-trip each, and copied into a
buffer sized to the sum of the chunk lengths. Order is positional: chunk
``i`` of the identifier list lands at offset ``sum(len(chunk_0..i-1))``
regardless of identifier values. Any failed read aborts the whole operation;
a partially filled buffer is never returned.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .backend.base import SiteBackend
from .errors import BackendError, ChunkReadFailed, InvalidArgument

__all__ = ["ChunkReassembler", "reassemble"]

LOGGER = logging.getLogger(__name__)


class ChunkReassembler:
    """Reconstructs a resource's bytes from its ordered chunk identifiers."""

    def reassemble(self, backend: SiteBackend, site: str, chunk_ids: Sequence[str]) -> bytes:
        """Fetch every chunk in ``chunk_ids`` and return their concatenation.

        Raises:
            InvalidArgument: If ``site`` or ``chunk_ids`` is empty.
            ChunkReadFailed: If the storage handle or any chunk cannot be read.
        """

        if not site or not chunk_ids:
            raise InvalidArgument("Valid site address and chunk identifier list required")

        total = len(chunk_ids)
        LOGGER.info(
            f"reading content from {total} chunks",
            extra={"stage": "reassembly", "site": site, "chunk_total": total},
        )
        try:
            storage = backend.storage_handle(site)
        except BackendError as exc:
            raise ChunkReadFailed(0, total, exc) from exc
        LOGGER.debug(f"storage handle at {storage}", extra={"stage": "reassembly", "site": site})

        chunks: List[bytes] = []
        for index, chunk_id in enumerate(chunk_ids):
            try:
                chunk = backend.read_chunk(storage, chunk_id)
            except BackendError as exc:
                LOGGER.error(
                    f"failed to read chunk {chunk_id}: {exc}",
                    extra={
                        "stage": "reassembly",
                        "site": site,
                        "chunk_index": index,
                        "chunk_total": total,
                    },
                )
                raise ChunkReadFailed(index, total, exc) from exc
            chunks.append(chunk)
            LOGGER.debug(
                f"chunk {index + 1}/{total} read: {len(chunk)} bytes ({chunk_id[:10]}...)",
                extra={"stage": "reassembly", "chunk_index": index, "chunk_total": total},
            )

        combined = bytearray(sum(len(chunk) for chunk in chunks))
        offset = 0
        for chunk in chunks:
            combined[offset : offset + len(chunk)] = chunk
            offset += len(chunk)

        LOGGER.info(
            f"reconstructed {len(combined)} bytes from {total} chunks",
            extra={"stage": "reassembly", "site": site, "chunk_total": total},
        )
        return bytes(combined)


def reassemble(backend: SiteBackend, site: str, chunk_ids: Sequence[str]) -> bytes:
    return ChunkReassembler().reassemble(backend, site, chunk_ids)
