# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.protocol",
#   "purpose": "HTTP-style HEAD/GET emulation over site contract queries.",
#   "sections": [
#     {"id": "resourceprotocolclient", "name": "ResourceProtocolClient", "anchor": "class-resourceprotocolclient", "kind": "class"},
#     {"id": "head", "name": "ResourceProtocolClient.head", "anchor": "method-head", "kind": "method"},
#     {"id": "locate", "name": "ResourceProtocolClient.locate", "anchor": "method-locate", "kind": "method"},
#     {"id": "fetch", "name": "ResourceProtocolClient.fetch", "anchor": "method-fetch", "kind": "method"}
#   ]
# }
# === /NAVMAP ===

"""HTTP-style request emulation over site contract queries.

The backend only exposes two read calls per site: a metadata query (HEAD)
and a full query (GET) that also returns the chunk identifiers of the
requested range. This module layers web semantics on top of them:

    RESOLVE_HEAD -> [REDIRECT]* -> [INDEX_FALLBACK]? -> GET_LOCATION -> DONE

Design:
- **HEAD first**: a HEAD precedes GET so missing resources never make GET revert.
- **Folded failures**: a failing HEAD is an implicit 404; a failing GET is
  retried once with the full range, then becomes a synthetic 404 location.
  Backend unreachability and absence are indistinguishable to the caller.
- **Bounded**: redirects stop after ``max_redirects`` hops and surface the
  last redirect status; index probing tries a fixed candidate list once.
- **Undercount repair**: when fewer chunk identifiers arrive than the
  declared total, the full index range is re-requested and adopted only if
  it yields strictly more identifiers.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .backend.base import HeadRequest, SiteBackend
from .errors import BackendError
from .models import (
    FULL_RANGE,
    ZERO_HASH,
    ChunkRange,
    FetchResult,
    RedirectHop,
    RequestOptions,
    ResourceLocation,
    ResponseHead,
)
from .paths import index_candidates, looks_like_directory, normalize_path, resolve_redirect
from .reassembly import ChunkReassembler

__all__ = ["DEFAULT_INDEX_CANDIDATES", "ResourceProtocolClient"]

LOGGER = logging.getLogger(__name__)

DEFAULT_INDEX_CANDIDATES: Sequence[str] = ("index.html", "index.htm", "index.md", "index.txt")


class ResourceProtocolClient:
    """Drives the HEAD/redirect/fallback/GET exchange for one backend."""

    def __init__(
        self,
        backend: SiteBackend,
        *,
        reassembler: Optional[ChunkReassembler] = None,
        index_names: Sequence[str] = DEFAULT_INDEX_CANDIDATES,
    ) -> None:
        self.backend = backend
        self.reassembler = reassembler or ChunkReassembler()
        self.index_names = tuple(index_names)

    # ------------------------------------------------------------------
    # Single queries
    # ------------------------------------------------------------------

    def head(
        self,
        site: str,
        path: str,
        if_modified_since: int = 0,
        if_none_match: str = ZERO_HASH,
    ) -> ResponseHead:
        """Run one metadata query; any backend failure is reported as a 404 head."""

        request = HeadRequest(path, if_modified_since, if_none_match)
        try:
            head = self.backend.head(site, request)
        except BackendError as exc:
            LOGGER.info(
                f"HEAD failed for {path}, assuming it does not exist: {exc}",
                extra={"stage": "head", "site": site, "path": path, "status": 404},
            )
            return ResponseHead.not_found()
        LOGGER.debug(
            f"HEAD {path} -> {head.status}",
            extra={"stage": "head", "site": site, "path": path, "status": head.status},
        )
        return head

    def _locate_once(
        self,
        site: str,
        path: str,
        chunk_range: ChunkRange,
        if_modified_since: int,
        if_none_match: str,
    ) -> ResourceLocation:
        request = HeadRequest(path, if_modified_since, if_none_match)
        return self.backend.locate(site, request, chunk_range)

    def locate(
        self,
        site: str,
        path: str,
        chunk_range: ChunkRange = FULL_RANGE,
        if_modified_since: int = 0,
        if_none_match: str = ZERO_HASH,
    ) -> ResourceLocation:
        """Run the full query, retrying once with the full range before giving up with a 404."""

        try:
            return self._locate_once(site, path, chunk_range, if_modified_since, if_none_match)
        except BackendError as exc:
            LOGGER.warning(
                f"GET failed for {path} (range {chunk_range.start}:{chunk_range.end}): {exc}",
                extra={"stage": "locate", "site": site, "path": path},
            )
        try:
            return self._locate_once(site, path, FULL_RANGE, if_modified_since, if_none_match)
        except BackendError as exc:
            LOGGER.warning(
                f"GET retry with full range failed for {path}; treating as not found: {exc}",
                extra={"stage": "locate", "site": site, "path": path, "status": 404},
            )
        return ResourceLocation.not_found()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _follow_redirects(
        self, site: str, path: str, options: RequestOptions
    ) -> Tuple[ResponseHead, str, List[RedirectHop]]:
        hops: List[RedirectHop] = []
        redirects_left = options.max_redirects
        head = self.head(site, path, options.if_modified_since, options.if_none_match)
        while head.is_redirect and head.redirect_location and redirects_left > 0:
            target = resolve_redirect(path, head.redirect_location)
            redirects_left -= 1
            LOGGER.info(
                f"redirect ({head.status}) to {head.redirect_location} -> {target} "
                f"(remaining: {redirects_left})",
                extra={"stage": "redirect", "site": site, "path": target, "status": head.status},
            )
            hops.append(RedirectHop(source=path, target=target, status=head.status))
            path = target
            head = self.head(site, path, options.if_modified_since, options.if_none_match)
        if head.is_redirect and head.redirect_location:
            LOGGER.warning(
                f"redirect limit of {options.max_redirects} reached at {path}",
                extra={"stage": "redirect", "site": site, "path": path, "status": head.status},
            )
        return head, path, hops

    def _index_fallback(
        self, site: str, path: str, head: ResponseHead, options: RequestOptions
    ) -> Tuple[ResponseHead, str]:
        for candidate in index_candidates(path, self.index_names):
            candidate_head = self.head(
                site, candidate, options.if_modified_since, options.if_none_match
            )
            if candidate_head.ok:
                LOGGER.info(
                    f"index fallback succeeded at {candidate}",
                    extra={"stage": "index", "site": site, "path": candidate},
                )
                return candidate_head, candidate
        return head, path

    def _direct_locate(
        self, site: str, path: str, options: RequestOptions
    ) -> Optional[ResourceLocation]:
        try:
            return self._locate_once(
                site, path, options.chunk_range, options.if_modified_since, options.if_none_match
            )
        except BackendError as exc:
            LOGGER.debug(
                f"direct GET failed for {path}: {exc}",
                extra={"stage": "locate", "site": site, "path": path},
            )
            return None

    def _repair_undercount(
        self, site: str, path: str, location: ResourceLocation, options: RequestOptions
    ) -> ResourceLocation:
        total = location.total_chunks
        found = len(location.chunk_ids)
        if options.chunk_range.is_full and total > 0 and found < total:
            LOGGER.warning(
                f"missing chunks for {path}: expected {total}, got {found}; requesting all",
                extra={"stage": "repair", "site": site, "path": path, "chunk_total": total},
            )
            try:
                full = self._locate_once(
                    site,
                    path,
                    ChunkRange(0, total - 1),
                    options.if_modified_since,
                    options.if_none_match,
                )
            except BackendError as exc:
                LOGGER.warning(
                    f"failed to request all chunks for {path}: {exc}",
                    extra={"stage": "repair", "site": site, "path": path},
                )
            else:
                if len(full.chunk_ids) > found:
                    LOGGER.info(
                        f"fetched all chunks: {len(full.chunk_ids)}/{total}",
                        extra={"stage": "repair", "site": site, "path": path},
                    )
                    location = full
                else:
                    LOGGER.warning(
                        f"still missing chunks for {path} after explicit request",
                        extra={"stage": "repair", "site": site, "path": path},
                    )

        if location.head.ok and location.total_chunks > 0 and not location.chunk_ids:
            try:
                location = self._locate_once(
                    site,
                    path,
                    ChunkRange(0, 0),
                    options.if_modified_since,
                    options.if_none_match,
                )
            except BackendError as exc:
                LOGGER.warning(
                    f"paging first chunk failed for {path}: {exc}",
                    extra={"stage": "repair", "site": site, "path": path},
                )
            else:
                LOGGER.info(
                    f"paged first chunk: {len(location.chunk_ids)} returned",
                    extra={"stage": "repair", "site": site, "path": path},
                )
        return location

    def fetch(self, site: str, path: Optional[str], options: Optional[RequestOptions] = None) -> FetchResult:
        """Run the full request state machine for ``path`` on ``site``.

        Args:
            site: Resolved site address.
            path: Request path; normalised before use.
            options: Request options; defaults apply when omitted.

        Returns:
            A :class:`FetchResult`. Not-found, not-modified, and redirect-limit
            outcomes are reported through ``status`` rather than raised.

        Raises:
            InvalidPath: If ``path`` or a redirect target is malformed.
            ChunkReadFailed: If reassembly of a located resource fails.
        """

        options = options or RequestOptions()
        path = normalize_path(path)

        if options.head_only:
            LOGGER.info(
                f"HEAD request for {path}",
                extra={"stage": "head", "site": site, "path": path},
            )
            head = self.head(site, path, options.if_modified_since, options.if_none_match)
            return FetchResult(
                location=ResourceLocation.head_only(head),
                path=path,
                requested_range=options.chunk_range,
            )

        LOGGER.info(f"fetching {path}", extra={"stage": "fetch", "site": site, "path": path})
        head, path, hops = self._follow_redirects(site, path, options)

        if head.status == 404 and looks_like_directory(path):
            head, path = self._index_fallback(site, path, head, options)

        if head.ok:
            location = self.locate(
                site, path, options.chunk_range, options.if_modified_since, options.if_none_match
            )
        else:
            direct = None if head.is_redirect else self._direct_locate(site, path, options)
            if direct is None or not direct.head.ok:
                LOGGER.info(
                    f"{path} resolved with status {head.status}; no content",
                    extra={"stage": "fetch", "site": site, "path": path, "status": head.status},
                )
                return FetchResult(
                    location=ResourceLocation.head_only(head),
                    path=path,
                    redirects=tuple(hops),
                    requested_range=options.chunk_range,
                )
            LOGGER.info(
                f"direct GET succeeded for {path} after HEAD status {head.status}",
                extra={"stage": "locate", "site": site, "path": path, "status": direct.status},
            )
            location = direct

        LOGGER.info(
            f"located {len(location.chunk_ids)} chunks (total {location.total_chunks}) "
            f"with status {location.status}",
            extra={"stage": "locate", "site": site, "path": path, "status": location.status},
        )
        location = self._repair_undercount(site, path, location, options)

        content: Optional[bytes] = None
        if location.head.ok and not options.chunk_ids_only:
            if location.chunk_ids:
                content = self.reassembler.reassemble(self.backend, site, location.chunk_ids)
            elif location.total_chunks == 0:
                content = b""

        return FetchResult(
            location=location,
            content=content,
            path=path,
            redirects=tuple(hops),
            requested_range=options.chunk_range,
        )
