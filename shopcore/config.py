import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
import json
from typing import Dict, List, Optional

from dotenv import load_dotenv


PRODUCTION_ENVS = {"production", "prod"}


@dataclass
class PaymentGatewayConfig:
    preferred: str = "payfast"
    payfast_merchant_id: str = ""
    payfast_merchant_key: str = ""
    payfast_passphrase: str = ""
    payfast_base_url: str = "https://sandbox.payfast.co.za"
    jazzcash_merchant_id: str = ""
    jazzcash_password: str = ""
    jazzcash_integrity_salt: str = ""
    jazzcash_base_url: str = "https://sandbox.jazzcash.com.pk"
    timeout_seconds: float = 30.0

    @property
    def payfast_configured(self) -> bool:
        return bool(self.payfast_merchant_id and self.payfast_merchant_key)

    @property
    def jazzcash_configured(self) -> bool:
        return bool(self.jazzcash_merchant_id and self.jazzcash_password)


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    app_base_url: str
    currency: str
    environment: str = "development"
    tax_rate: Decimal = Decimal("0.15")
    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    payment: PaymentGatewayConfig = field(default_factory=PaymentGatewayConfig)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in PRODUCTION_ENVS

    def get_app_url(self, path: str) -> str:
        base = self.app_base_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"


ALLOWED_HOT_KEYS = {"CURRENCY", "TAX_RATE"}
SENSITIVE_KEYS = {
    "SECRET_KEY",
    "AUTH_JWT_SECRET",
    "PAYFAST_MERCHANT_KEY",
    "PAYFAST_PASSPHRASE",
    "JAZZCASH_PASSWORD",
    "JAZZCASH_INTEGRITY_SALT",
}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "PKR").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def validate_tax_rate(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.15")
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid tax rate: {value!r}") from exc
    if rate < 0 or rate >= 1:
        raise ValueError("Tax rate must be within [0, 1)")
    return rate


def settings_path(default: Optional[Path] = None) -> Path:
    return Path(os.getenv("SHOP_SETTINGS_FILE") or default or Path.cwd() / "data" / "settings.json")


def _load_settings_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ValueError(f"Unreadable settings file {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def _setting(settings: dict, key: str, default: str = "") -> str:
    # data/settings.json wins over the environment
    value = settings.get(key)
    if value is None or value == "":
        value = os.getenv(key, default)
    return str(value) if value is not None else default


def load_payment_config(s: Optional[dict] = None) -> PaymentGatewayConfig:
    s = s or {}
    return PaymentGatewayConfig(
        preferred=_setting(s, "PAYMENT_GATEWAY", "payfast").strip().lower(),
        payfast_merchant_id=_setting(s, "PAYFAST_MERCHANT_ID"),
        payfast_merchant_key=_setting(s, "PAYFAST_MERCHANT_KEY"),
        payfast_passphrase=_setting(s, "PAYFAST_PASSPHRASE"),
        payfast_base_url=_setting(s, "PAYFAST_BASE_URL", "https://sandbox.payfast.co.za").rstrip("/"),
        jazzcash_merchant_id=_setting(s, "JAZZCASH_MERCHANT_ID"),
        jazzcash_password=_setting(s, "JAZZCASH_PASSWORD"),
        jazzcash_integrity_salt=_setting(s, "JAZZCASH_INTEGRITY_SALT"),
        jazzcash_base_url=_setting(s, "JAZZCASH_BASE_URL", "https://sandbox.jazzcash.com.pk").rstrip("/"),
        timeout_seconds=float(_setting(s, "PAYMENT_TIMEOUT_SECONDS", "30") or 30),
    )


def load_env(settings_file: Optional[Path] = None) -> AppConfig:
    # settings.json first, then the process environment and .env
    load_dotenv()
    s = _load_settings_file(settings_path(settings_file))
    return AppConfig(
        database_url=_setting(s, "DATABASE_URL", "sqlite:///data/shop.db"),
        secret_key=_setting(s, "SECRET_KEY", "dev_secret"),
        log_level=_setting(s, "LOG_LEVEL", "INFO").upper(),
        app_base_url=_setting(s, "APP_BASE_URL", "http://127.0.0.1:5000").rstrip("/"),
        currency=validate_currency(s.get("CURRENCY") or os.getenv("CURRENCY")),
        environment=_setting(s, "APP_ENV", "development"),
        tax_rate=validate_tax_rate(s.get("TAX_RATE") or os.getenv("TAX_RATE")),
        jwt_secret=_setting(s, "AUTH_JWT_SECRET"),
        jwt_audience=_setting(s, "AUTH_JWT_AUDIENCE", "authenticated"),
        payment=load_payment_config(s),
    )


def refresh_non_sensitive(overrides: Dict[str, str], current: AppConfig) -> AppConfig:
    updates = {k: v for k, v in (overrides or {}).items() if k in ALLOWED_HOT_KEYS}
    return AppConfig(
        database_url=current.database_url,
        secret_key=current.secret_key,
        log_level=current.log_level,
        app_base_url=current.app_base_url,
        currency=validate_currency(updates.get("CURRENCY", current.currency)),
        environment=current.environment,
        tax_rate=validate_tax_rate(updates.get("TAX_RATE", current.tax_rate)),
        jwt_secret=current.jwt_secret,
        jwt_audience=current.jwt_audience,
        payment=current.payment,
    )


def requires_restart(changed_keys: List[str]) -> bool:
    if not changed_keys:
        return False
    # only the hot keys are picked up by a running process
    return any(k not in ALLOWED_HOT_KEYS for k in changed_keys)
