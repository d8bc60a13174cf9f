"""Connectivity diagnostics for a site on one endpoint.

Each probe runs independently and records its outcome; a failing probe
never prevents the others from running and nothing here raises backend
errors to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import BackendError
from .networks import Endpoint

__all__ = ["SiteDiagnostics", "diagnose_site"]

LOGGER = logging.getLogger(__name__)


@dataclass
class SiteDiagnostics:
    site: str
    network: str
    configured_chain_id: Optional[int] = None
    reported_chain_id: Optional[int] = None
    site_has_code: Optional[bool] = None
    storage_handle: Optional[str] = None
    storage_has_code: Optional[bool] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return not self.errors and bool(self.site_has_code) and self.storage_handle is not None

    def as_dict(self) -> Dict[str, object]:
        return {
            "site": self.site,
            "network": self.network,
            "configured_chain_id": self.configured_chain_id,
            "reported_chain_id": self.reported_chain_id,
            "site_has_code": self.site_has_code,
            "storage_handle": self.storage_handle,
            "storage_has_code": self.storage_has_code,
            "healthy": self.healthy,
            "errors": dict(self.errors),
        }


def diagnose_site(endpoint: Endpoint, site: str) -> SiteDiagnostics:
    """Probe network identity, site code, and the site's storage contract."""

    report = SiteDiagnostics(site=site, network=endpoint.key, configured_chain_id=endpoint.chain_id)
    backend = endpoint.backend
    extra = {"stage": "diagnose", "network": endpoint.key, "site": site}

    try:
        report.reported_chain_id = backend.network_id()
    except BackendError as exc:
        report.errors["network_id"] = str(exc)

    try:
        report.site_has_code = backend.has_code(site)
    except BackendError as exc:
        report.errors["site_code"] = str(exc)

    try:
        report.storage_handle = backend.storage_handle(site)
    except BackendError as exc:
        report.errors["storage_handle"] = str(exc)

    if report.storage_handle is not None:
        try:
            report.storage_has_code = backend.has_code(report.storage_handle)
        except BackendError as exc:
            report.errors["storage_code"] = str(exc)

    if report.errors:
        LOGGER.warning(f"diagnostics found problems: {sorted(report.errors)}", extra=extra)
    else:
        LOGGER.info("diagnostics passed", extra=extra)
    return report
