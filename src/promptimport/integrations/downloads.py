# src/promptimport/integrations/downloads.py
from typing import Optional

from loguru import logger


# ---------------------------------------------------------
# Base class: the host application's download subsystem
# ---------------------------------------------------------
class DownloadScheduler:
    def schedule(self, url: str, filename: Optional[str], kind: str) -> Optional[str]:
        """Queue a download and return the download job id, if one is issued."""
        raise NotImplementedError


# ---------------------------------------------------------
# Default: nothing to hand the download to
# ---------------------------------------------------------
class NullDownloadScheduler(DownloadScheduler):
    def schedule(self, url: str, filename: Optional[str], kind: str) -> Optional[str]:
        logger.info("Download of {} ({}) left to the host application: {}", filename, kind, url)
        return None
