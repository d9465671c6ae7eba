# src/promptimport/integrations/civitai.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from ..core.config import Settings
from ..domain.models import DependencyRecord, TierResult
from ..domain.resolver import REGISTRY_SOURCE, ResolverTier
from .downloads import DownloadScheduler, NullDownloadScheduler

DEFAULT_API_BASE = "https://civitai.com/api/v1"
DEFAULT_TIMEOUT_S = 30.0

LICENSE_DENIED_MESSAGE = "Model license not accepted or allowed by policy"
NO_DOWNLOAD_URL_MESSAGE = "Could not get download URL from CivitAI"


# ------------ license policy ------------
@dataclass
class LicensePolicy:
    allow_tos_auto_accept: bool = False
    allowed_licenses: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, s: Settings) -> Optional["LicensePolicy"]:
        if not s.CIVITAI_LICENSE_POLICY:
            return None
        return cls(
            allow_tos_auto_accept=s.CIVITAI_ALLOW_TOS_AUTO_ACCEPT,
            allowed_licenses=list(s.CIVITAI_ALLOWED_LICENSES),
        )


def _commercial_flag(value: Any) -> str:
    # allowCommercialUse is a string on older payloads and a list of rights on newer ones
    if isinstance(value, list):
        if not value:
            return "none"
        return ",".join(str(v) for v in value).lower()
    return str(value).lower()


def check_license_allowed(model_info: Dict[str, Any], policy: Optional[LicensePolicy]) -> bool:
    """
    Apply the server license policy to a registry model-version payload.

    No policy allows everything. A policy that cannot be evaluated denies.
    Note the allow-list quirk: a "noncommercial" token allows any model,
    whatever its commercial flag says.
    """
    if policy is None:
        return True

    try:
        if not policy.allow_tos_auto_accept:
            logger.debug("ToS auto-accept not enabled in settings")

        model = model_info.get("model")
        if not isinstance(model, dict) or "allowCommercialUse" not in model:
            return True

        commercial_use = _commercial_flag(model["allowCommercialUse"])
        if not policy.allowed_licenses:
            return True

        for allowed in policy.allowed_licenses:
            token = allowed.lower()
            if "commercial" in token and commercial_use != "none":
                return True
            if "noncommercial" in token or "non-commercial" in token:
                return True
            if token in ("*", "all"):
                return True

        logger.info("Model license '{}' not in allowed list", commercial_use)
        return False
    except Exception:
        logger.exception("Error checking license, denying")
        return False


def get_download_url(model_info: Dict[str, Any]) -> Optional[str]:
    """Primary file, else the only file, else the top-level downloadUrl."""
    try:
        files = model_info.get("files")
        if isinstance(files, list) and files:
            for f in files:
                if not isinstance(f, dict):
                    continue
                if f.get("primary") is True or len(files) == 1:
                    url = f.get("downloadUrl")
                    if url:
                        return str(url)

        url = model_info.get("downloadUrl")
        if url:
            return str(url)
    except Exception:
        logger.exception("Error extracting download URL")
    return None


# ------------ resolver tier ------------
class CivitAIResolver(ResolverTier):
    """Registry tier: hash / version lookup, license gate, download scheduling."""

    name = "registry"

    def __init__(
        self,
        api_key: Optional[str],
        policy: Optional[LicensePolicy] = None,
        downloads: Optional[DownloadScheduler] = None,
        http: Any = requests,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.policy = policy
        self.downloads = downloads or NullDownloadScheduler()
        self.http = http
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        api_key: Optional[str],
        downloads: Optional[DownloadScheduler] = None,
    ) -> "CivitAIResolver":
        return cls(
            api_key=api_key,
            policy=LicensePolicy.from_settings(s),
            downloads=downloads,
            api_base=s.CIVITAI_API_BASE,
            timeout=s.CIVITAI_TIMEOUT_S,
        )

    def _get(self, path: str, what: str) -> Optional[Dict[str, Any]]:
        url = f"{self.api_base}{path}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            r = self.http.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("CivitAI request for {} failed: {}", what, e)
            return None

        if r.status_code == 404:
            logger.debug("Model not found on CivitAI for {}", what)
            return None
        if not 200 <= r.status_code < 300:
            logger.warning("CivitAI API error {} for {}", r.status_code, what)
            return None

        try:
            data = r.json()
        except ValueError:
            logger.warning("CivitAI returned a non-JSON body for {}", what)
            return None
        if not isinstance(data, dict):
            logger.warning("CivitAI returned an unexpected payload for {}", what)
            return None
        return data

    def lookup_by_hash(self, sha256: str) -> Optional[Dict[str, Any]]:
        return self._get(f"/model-versions/by-hash/{sha256}", f"hash {sha256}")

    def lookup_by_version(self, version_id: str) -> Optional[Dict[str, Any]]:
        return self._get(f"/model-versions/{version_id}", f"version {version_id}")

    def resolve(self, record: DependencyRecord) -> TierResult:
        if not self.api_key:
            logger.debug("CivitAI API key not configured, skipping CivitAI resolution")
            return TierResult.unresolved()

        model_info = None
        if record.sha256:
            model_info = self.lookup_by_hash(record.sha256)
        if model_info is None and record.registry_version_id:
            model_info = self.lookup_by_version(record.registry_version_id)

        if model_info is None:
            logger.debug("Could not find model on CivitAI for: {}", record.reference.raw_reference)
            return TierResult.unresolved()

        if not check_license_allowed(model_info, self.policy):
            logger.warning("Model license not allowed for: {}", record.reference.raw_reference)
            return TierResult.denied(LICENSE_DENIED_MESSAGE)

        download_url = get_download_url(model_info)
        if not download_url:
            return TierResult.denied(NO_DOWNLOAD_URL_MESSAGE)

        filename = model_info.get("name")
        filename = str(filename) if filename else None
        download_job_id = self.downloads.schedule(download_url, filename, record.kind)

        logger.info("Scheduled CivitAI download for: {}", record.reference.raw_reference)
        return TierResult.scheduled(
            source=REGISTRY_SOURCE,
            filename=filename,
            download_url=download_url,
            download_job_id=download_job_id,
        )
