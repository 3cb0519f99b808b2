"""
Company Settings

Company branding (name, logo) read from accounting_settings.
Held as an immutable snapshot; refresh() swaps in a new one.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from supabase import Client

from intelliservice.services.supabase_client import get_supabase

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = "IntelliService"

COMPANY_SETTING_KEYS = ["company_name", "company_logo_url"]


@dataclass(frozen=True)
class CompanySettings:
    company_name: str = DEFAULT_COMPANY_NAME
    company_logo_url: str = ""

    def to_dict(self) -> dict:
        return {"company_name": self.company_name, "company_logo_url": self.company_logo_url}


def parse_company_settings(rows: List[dict]) -> CompanySettings:
    """Defaults overridden by any non-empty setting rows"""
    settings = CompanySettings()
    for row in rows or []:
        key = row.get("setting_key")
        value = row.get("setting_value")
        if key in COMPANY_SETTING_KEYS and value:
            settings = replace(settings, **{key: value})
    return settings


class CompanySettingsProvider:
    """Holds the current CompanySettings snapshot"""

    def __init__(self, db: Optional[Client] = None):
        self._db = db
        self._snapshot = CompanySettings()

    @property
    def snapshot(self) -> CompanySettings:
        return self._snapshot

    async def refresh(self) -> CompanySettings:
        """Reload from the database; on failure the previous snapshot is kept"""
        try:
            db = self._db or get_supabase()
            result = db.table("accounting_settings") \
                .select("setting_key, setting_value") \
                .in_("setting_key", COMPANY_SETTING_KEYS) \
                .execute()
            self._snapshot = parse_company_settings(result.data or [])
            logger.info(f"[Company] Settings loaded: {self._snapshot.company_name}")
        except Exception as e:
            logger.error(f"[Company] Error loading company settings: {e}")
        return self._snapshot


# Singleton instance
_provider: Optional[CompanySettingsProvider] = None


def get_company_settings_provider() -> CompanySettingsProvider:
    global _provider
    if _provider is None:
        _provider = CompanySettingsProvider()
    return _provider
