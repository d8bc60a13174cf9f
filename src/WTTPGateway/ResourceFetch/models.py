"""Typed request and response structures for the resource protocol.

The storage backend answers two query shapes, a metadata-only ``HEAD`` and a
full ``GET`` that also locates the chunk identifiers making up the resource.
The dataclasses below mirror those wire structures with Python names; every
32-byte value (etags, chunk identifiers, content hashes) is carried as a
``0x``-prefixed lowercase hex string so results stay printable and hashable.

``RequestOptions`` is the one caller-facing configuration object and is
validated with pydantic like the rest of the configuration surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "ZERO_HASH",
    "ZERO_ADDRESS",
    "SUCCESS_STATUSES",
    "REDIRECT_STATUSES",
    "ChunkRange",
    "FULL_RANGE",
    "CacheControl",
    "CorsPolicy",
    "Redirect",
    "HeaderInfo",
    "ResourceProperties",
    "ResourceMetadata",
    "ResponseHead",
    "ResourceLocation",
    "RedirectHop",
    "FetchResult",
    "RequestOptions",
]

ZERO_HASH = "0x" + "00" * 32
ZERO_ADDRESS = "0x" + "00" * 20
ZERO_CODE = "0x0000"

SUCCESS_STATUSES = frozenset({200, 206})
REDIRECT_STATUSES = frozenset({301, 302, 307, 308})


@dataclass(frozen=True)
class ChunkRange:
    """Inclusive chunk index range; ``end == -1`` means "through the last chunk"."""

    start: int = 0
    end: int = -1

    @property
    def is_full(self) -> bool:
        return self.start == 0 and self.end == -1

    @classmethod
    def parse(cls, value: str) -> "ChunkRange":
        """Parse ``"START:END"`` (either side may be empty)."""

        start_text, sep, end_text = value.partition(":")
        if not sep:
            raise ValueError(f"range must look like START:END, got {value!r}")
        start = int(start_text) if start_text.strip() else 0
        end = int(end_text) if end_text.strip() else -1
        return cls(start=start, end=end)


FULL_RANGE = ChunkRange()


@dataclass(frozen=True)
class CacheControl:
    immutable: bool = False
    preset: int = 0
    custom: str = ""


@dataclass(frozen=True)
class CorsPolicy:
    methods: int = 1
    origins: Tuple[str, ...] = ()
    preset: int = 0
    custom: str = ""


@dataclass(frozen=True)
class Redirect:
    code: int = 0
    location: str = ""


@dataclass(frozen=True)
class HeaderInfo:
    cache: CacheControl = field(default_factory=CacheControl)
    cors: CorsPolicy = field(default_factory=CorsPolicy)
    redirect: Redirect = field(default_factory=Redirect)


@dataclass(frozen=True)
class ResourceProperties:
    """Two-byte property codes as ``0x``-prefixed hex (``"0x7468"`` is text/html)."""

    mime_type: str = ZERO_CODE
    charset: str = ZERO_CODE
    encoding: str = ZERO_CODE
    language: str = ZERO_CODE


@dataclass(frozen=True)
class ResourceMetadata:
    properties: ResourceProperties = field(default_factory=ResourceProperties)
    size: int = 0
    version: int = 0
    last_modified: int = 0
    header: str = ZERO_HASH


@dataclass(frozen=True)
class ResponseHead:
    """Status, header info, and metadata returned by a metadata query."""

    status: int
    header: HeaderInfo = field(default_factory=HeaderInfo)
    metadata: ResourceMetadata = field(default_factory=ResourceMetadata)
    etag: str = ZERO_HASH

    @classmethod
    def not_found(cls) -> "ResponseHead":
        return cls(status=404)

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_STATUSES

    @property
    def redirect_location(self) -> str:
        return self.header.redirect.location

    @property
    def mime_type(self) -> str:
        return self.metadata.properties.mime_type


@dataclass(frozen=True)
class ResourceLocation:
    """A response head plus the ordered chunk identifiers for the requested range."""

    head: ResponseHead
    chunk_ids: Tuple[str, ...] = ()
    total_chunks: int = 0

    @classmethod
    def not_found(cls) -> "ResourceLocation":
        return cls(head=ResponseHead.not_found())

    @classmethod
    def head_only(cls, head: ResponseHead) -> "ResourceLocation":
        return cls(head=head)

    @property
    def status(self) -> int:
        return self.head.status

    @property
    def missing_chunks(self) -> int:
        return max(0, self.total_chunks - len(self.chunk_ids))


@dataclass(frozen=True)
class RedirectHop:
    """One followed redirect: where it came from, where it went, and the status."""

    source: str
    target: str
    status: int


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a fetch: location, optional reconstructed bytes, and the audit trail."""

    location: ResourceLocation
    content: Optional[bytes] = None
    path: str = "/"
    redirects: Tuple[RedirectHop, ...] = ()
    requested_range: ChunkRange = FULL_RANGE

    @property
    def head(self) -> ResponseHead:
        return self.location.head

    @property
    def status(self) -> int:
        return self.location.head.status

    @property
    def ok(self) -> bool:
        return self.location.head.ok

    @property
    def chunk_ids(self) -> Tuple[str, ...]:
        return self.location.chunk_ids

    @property
    def is_partial(self) -> bool:
        """True when the result does not cover every chunk the backend declared."""

        return self.location.missing_chunks > 0

    def with_content(self, content: Optional[bytes]) -> "FetchResult":
        return replace(self, content=content)

    def text(self) -> Optional[str]:
        """Decode ``content`` using the charset declared in the resource properties."""

        if self.content is None:
            return None
        from .content import decode_text

        return decode_text(self.content, self.head.metadata.properties.charset)


class RequestOptions(BaseModel):
    """Per-request options for a fetch.

    ``if_modified_since`` and ``if_none_match`` make the request conditional,
    ``chunk_range`` selects a sub-range of chunks, ``head_only`` stops after
    the metadata query, and ``chunk_ids_only`` locates the resource without
    downloading chunk bytes.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid", frozen=True, arbitrary_types_allowed=True
    )

    if_modified_since: int = Field(default=0, ge=0)
    if_none_match: str = Field(default=ZERO_HASH)
    chunk_range: ChunkRange = Field(default=FULL_RANGE)
    head_only: bool = False
    chunk_ids_only: bool = False
    max_redirects: int = Field(default=5, ge=0)

    @field_validator("if_none_match")
    @classmethod
    def validate_etag(cls, v: str) -> str:
        text = v.lower()
        if not text.startswith("0x"):
            text = "0x" + text
        if len(text) != 66:
            raise ValueError("if_none_match must be a 32-byte hex string")
        int(text, 16)
        return text
