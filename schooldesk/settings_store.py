from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import DEFAULT_TUITION, SETTINGS_JSON_PATH


def _tuition_from(raw: Any) -> dict[str, int]:
    out = dict(DEFAULT_TUITION)
    if not isinstance(raw, dict):
        return out
    for cls, amount in raw.items():
        try:
            value = int(float(amount))
        except Exception:
            continue
        if value >= 0:
            out[str(cls)] = value
    return out


@dataclass
class Settings:
    school_name: str = "SchoolDesk"
    currency_symbol: str = "₦"
    default_tuition: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TUITION))
    lenient_numbers: bool = False  # True: unparsable amounts become 0 instead of being rejected
    sync_workers: int = 4
    appearance_mode: str = "Dark"  # Light | Dark

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Settings":
        try:
            workers = int(d.get("sync_workers", 4))
        except Exception:
            workers = 4
        # One worker per table update is plenty; keep the pool small.
        if workers < 1:
            workers = 1
        if workers > 16:
            workers = 16
        mode = str(d.get("appearance_mode", "Dark"))
        if mode not in ("Light", "Dark"):
            mode = "Dark"
        return Settings(
            school_name=str(d.get("school_name", "SchoolDesk")),
            currency_symbol=str(d.get("currency_symbol", "₦")),
            default_tuition=_tuition_from(d.get("default_tuition")),
            lenient_numbers=bool(d.get("lenient_numbers", False)),
            sync_workers=workers,
            appearance_mode=mode,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "school_name": self.school_name,
            "currency_symbol": self.currency_symbol,
            "default_tuition": dict(self.default_tuition),
            "lenient_numbers": self.lenient_numbers,
            "sync_workers": self.sync_workers,
            "appearance_mode": self.appearance_mode,
        }


class SettingsStore:
    def __init__(self, path: Path = SETTINGS_JSON_PATH):
        self.path = path

    def load(self) -> Settings:
        if not self.path.exists():
            settings = Settings()
            self.save(settings)
            return settings

        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return Settings.from_dict(data if isinstance(data, dict) else {})

    def save(self, settings: Settings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2, ensure_ascii=False)
            f.write("\n")
