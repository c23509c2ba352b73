"""
Bootstrap environment for Streamlit Cloud & local dev:
- Flatten st.secrets into uppercase os.environ keys (nested -> PREFIX_CHILD)
- Finally, load .env (without overriding existing env vars)
"""

from __future__ import annotations

import os
import re
from typing import Any, Iterator, Mapping, Optional, Tuple

from dotenv import load_dotenv


def _sanitize_key(key: str) -> str:
    # Uppercase and replace non-alphanumeric with underscores
    return re.sub(r"[^A-Za-z0-9_]", "_", key.upper())


def _flatten_secrets(prefix: str, val: Any) -> Iterator[Tuple[str, str]]:
    if isinstance(val, Mapping):
        for k, v in val.items():
            yield from _flatten_secrets(f"{prefix}_{k}", v)
    else:
        yield _sanitize_key(prefix), str(val)


def secrets_mapping() -> Optional[Mapping[str, Any]]:
    """Return Streamlit secrets as a plain dict, or None outside a configured runtime."""
    try:
        import streamlit as st

        items = getattr(st, "secrets", None)
        if not items:
            return None
        try:
            return items.to_dict()  # type: ignore[attr-defined]
        except AttributeError:
            return dict(items)
    except Exception:
        # st.secrets raises when no secrets.toml exists
        return None


def _bridge_secrets_to_env(secrets: Optional[Mapping[str, Any]] = None) -> None:
    secrets_dict = secrets if secrets is not None else secrets_mapping()
    if not secrets_dict:
        return
    for key, value in secrets_dict.items():
        for flat_k, flat_v in _flatten_secrets(key, value):
            os.environ.setdefault(flat_k, flat_v)


def _load_dotenv_non_override() -> None:
    # load_dotenv will not override existing env vars by default
    load_dotenv()


def ensure_env(secrets: Optional[Mapping[str, Any]] = None) -> None:
    """Idempotent: make sure env vars from secrets and .env are available.
    Safe to call multiple times, both inside and outside Streamlit runtime.
    """
    _bridge_secrets_to_env(secrets)
    _load_dotenv_non_override()
