"""
AHS Settings Service

Warranty (American Home Shield) billing defaults stored as key/value rows
in accounting_settings. Every change is written to ahs_audit_log.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.services.supabase_client import first_row, get_supabase

logger = logging.getLogger(__name__)

DIAGNOSIS_FEE_KEY = "ahs_default_diagnosis_fee"
LABOR_RATE_KEY = "ahs_default_labor_rate"
BILL_TO_CUSTOMER_KEY = "ahs_bill_to_customer_id"

AHS_SETTING_KEYS = [DIAGNOSIS_FEE_KEY, LABOR_RATE_KEY, BILL_TO_CUSTOMER_KEY]

DEFAULT_DIAGNOSIS_FEE = 94.0
DEFAULT_LABOR_RATE = 94.0

SETTINGS_HISTORY_LIMIT = 50

SETTING_DISPLAY_NAMES = {
    DIAGNOSIS_FEE_KEY: "Default Diagnosis Fee",
    LABOR_RATE_KEY: "Default Labor Rate/Hour",
    BILL_TO_CUSTOMER_KEY: "AHS Bill-To Customer",
}


@dataclass
class AHSDefaults:
    diagnosis_fee: float = DEFAULT_DIAGNOSIS_FEE
    labor_rate: float = DEFAULT_LABOR_RATE
    bill_to_customer_id: Optional[str] = None


@dataclass
class SettingHistory:
    id: str
    setting_key: str
    old_value: Optional[str]
    new_value: str
    changed_by: str
    changed_at: Optional[str]


def _parse_amount(value: Any, default: float) -> float:
    # Unparsable and zero values both fall back to the default
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return default
    return amount or default


def parse_ahs_defaults(rows: List[dict]) -> AHSDefaults:
    """Build AHSDefaults from accounting_settings rows"""
    defaults = AHSDefaults()
    for row in rows or []:
        key = row.get("setting_key")
        value = row.get("setting_value")
        if key == DIAGNOSIS_FEE_KEY:
            defaults.diagnosis_fee = _parse_amount(value, DEFAULT_DIAGNOSIS_FEE)
        elif key == LABOR_RATE_KEY:
            defaults.labor_rate = _parse_amount(value, DEFAULT_LABOR_RATE)
        elif key == BILL_TO_CUSTOMER_KEY:
            defaults.bill_to_customer_id = value if value and str(value).strip() else None
    return defaults


def setting_display_name(key: str) -> str:
    return SETTING_DISPLAY_NAMES.get(key, key)


def validate_settings(
    diagnosis_fee: Optional[float] = None,
    labor_rate: Optional[float] = None
) -> List[str]:
    """Return validation errors (empty when valid)"""
    errors = []

    if diagnosis_fee is not None:
        if diagnosis_fee < 0:
            errors.append("Diagnosis fee cannot be negative")
        if diagnosis_fee > 10000:
            errors.append("Diagnosis fee seems unusually high")

    if labor_rate is not None:
        if labor_rate < 0:
            errors.append("Labor rate cannot be negative")
        if labor_rate > 1000:
            errors.append("Labor rate seems unusually high")

    return errors


def map_history_entry(entry: dict) -> SettingHistory:
    new_value = entry.get("new_value") or {}
    old_value = entry.get("old_value") or {}
    performer = entry.get("performer") or {}
    return SettingHistory(
        id=entry.get("id"),
        setting_key=new_value.get("key") or "",
        old_value=old_value.get("value") or None,
        new_value=new_value.get("value") or "",
        changed_by=performer.get("full_name") or "Unknown",
        changed_at=entry.get("performed_at"),
    )


class AHSSettingsService:
    """Read and update AHS billing defaults"""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase()

    async def get_defaults(self) -> AHSDefaults:
        """
        Load the AHS defaults.

        Raises:
            Query errors propagate; callers cannot bill without settings.
        """
        try:
            result = self.db.table("accounting_settings") \
                .select("setting_key, setting_value") \
                .in_("setting_key", AHS_SETTING_KEYS) \
                .execute()
        except Exception as e:
            logger.error(f"[AHS] Error fetching AHS defaults: {e}")
            raise
        return parse_ahs_defaults(result.data or [])

    async def update_setting(self, key: str, value: str, user_id: str) -> None:
        if key not in AHS_SETTING_KEYS:
            raise ValueError(f"Unknown AHS setting: {key}")

        if key in (DIAGNOSIS_FEE_KEY, LABOR_RATE_KEY):
            try:
                amount = float(value)
            except (TypeError, ValueError):
                raise ValueError(f"{setting_display_name(key)} must be a number")
            errors = validate_settings(
                diagnosis_fee=amount if key == DIAGNOSIS_FEE_KEY else None,
                labor_rate=amount if key == LABOR_RATE_KEY else None,
            )
            if errors:
                raise ValueError("; ".join(errors))

        current = self.db.table("accounting_settings") \
            .select("setting_value") \
            .eq("setting_key", key) \
            .maybe_single() \
            .execute()
        current_row = first_row(current)
        old_value = current_row.get("setting_value") if current_row else None

        try:
            self.db.table("accounting_settings") \
                .update({
                    "setting_value": value,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                    "updated_by": user_id,
                }) \
                .eq("setting_key", key) \
                .execute()
        except Exception as e:
            logger.error(f"[AHS] Error updating AHS setting {key}: {e}")
            raise

        self.db.table("ahs_audit_log").insert({
            "entity_type": "settings",
            "action": "setting_updated",
            "old_value": {"key": key, "value": old_value},
            "new_value": {"key": key, "value": value},
            "performed_by": user_id,
        }).execute()

        logger.info(f"[AHS] Setting {key} updated by {user_id}")

    async def get_settings_history(self) -> List[SettingHistory]:
        """Last setting changes, newest first. Errors yield an empty list."""
        try:
            result = self.db.table("ahs_audit_log") \
                .select("id, old_value, new_value, performed_by, performed_at, "
                        "performer:profiles!ahs_audit_log_performed_by_fkey(full_name)") \
                .eq("entity_type", "settings") \
                .eq("action", "setting_updated") \
                .order("performed_at", desc=True) \
                .limit(SETTINGS_HISTORY_LIMIT) \
                .execute()
        except Exception as e:
            logger.error(f"[AHS] Error fetching AHS settings history: {e}")
            return []

        return [map_history_entry(entry) for entry in result.data or []]


def settings_to_dict(defaults: AHSDefaults) -> Dict[str, Any]:
    return {
        "diagnosis_fee": defaults.diagnosis_fee,
        "labor_rate": defaults.labor_rate,
        "bill_to_customer_id": defaults.bill_to_customer_id,
    }
