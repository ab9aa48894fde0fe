from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Merged settings view (dot-access).

    Precedence:
      - secrets override public when names overlap
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def cors_origin_list(self) -> list[str]:
        return self.public.cors_origin_list()


def _is_production_env() -> bool:
    env = str(os.environ.get("ENV") or os.environ.get("APP_ENV") or "").strip().lower()
    return env in {"prod", "production"}


def _secret_value(secret: SecretStr | None) -> str:
    try:
        return secret.get_secret_value() if secret else ""
    except Exception:
        return ""


def _validate(s: Settings) -> None:
    """
    Hard-fail only when explicitly requested (STRICT_SECRETS=1) or in production.

    Dev mode keeps working without a provider key; synthesis then reports the
    provider as unavailable.
    """
    import logging

    strict = bool(int(os.environ.get("STRICT_SECRETS", "0") or "0"))
    prod = _is_production_env()

    problems: list[str] = []
    if not _secret_value(s.secret.elevenlabs_api_key):
        problems.append("ELEVENLABS_API_KEY")

    backend = str(s.public.store_backend or "local").strip().lower()
    if backend == "rpc" and not str(s.public.shelby_rpc_url or "").strip():
        problems.append("SHELBY_RPC_URL")

    policy = str(s.public.overwrite_policy or "replace").strip().lower()
    if policy not in {"replace", "reject"}:
        problems.append("OVERWRITE_POLICY")

    if prod:
        for o in s.public.cors_origin_list():
            if "*" in str(o):
                problems.append("CORS_ORIGINS")
                break

    if problems:
        if prod or strict:
            raise ConfigError(
                "Unsafe or incomplete configuration detected: "
                + ", ".join(sorted(set(problems)))
                + ". Set them via environment variables, `.env` or `.env.secrets`."
            )
        logging.getLogger("shelby_voice").warning(
            "config_incomplete",
            extra={"missing": sorted(set(problems)), "strict_secrets": False, "production": prod},
        )


def get_safe_config_report() -> dict[str, Any]:
    """
    Deterministic, non-sensitive config report.

    - Public values are included (paths are stringified)
    - Secret values are NEVER included; only SET/UNSET markers
    """
    s = get_settings()

    pub = s.public.model_dump()
    pub_s: dict[str, Any] = {}
    for k, v in pub.items():
        pub_s[k] = str(v) if hasattr(v, "__fspath__") else v

    sec: dict[str, str] = {}
    for k in sorted(s.secret.model_fields.keys()):
        v = getattr(s.secret, k, None)
        if v is None:
            sec[k] = "UNSET"
        elif isinstance(v, SecretStr):
            sec[k] = "SET" if v.get_secret_value() else "UNSET"
        else:
            sec[k] = "SET" if str(v).strip() else "UNSET"

    strict = bool(int(os.environ.get("STRICT_SECRETS", "0") or "0"))
    return {
        "strict_secrets": strict,
        "public": pub_s,
        "secrets": sec,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    public = PublicConfig()
    secret = SecretConfig()
    s = Settings(public=public, secret=secret)
    _validate(s)
    return s
