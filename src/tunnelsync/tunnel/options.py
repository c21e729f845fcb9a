"""Load TunnelOptions from YAML network profiles."""

from __future__ import annotations

from pathlib import Path

import yaml

from tunnelsync.tunnel.models import LogLevel, TunnelOptions


def load_options(path: str | Path) -> TunnelOptions:
    """Load per-session options from a YAML profile file."""
    text = Path(path).read_text(encoding="utf-8")
    return load_options_from_string(text)


def load_options_from_string(text: str) -> TunnelOptions:
    data = yaml.safe_load(text)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Profile YAML must be a mapping")
    return build_options(data)


def build_options(data: dict) -> TunnelOptions:
    mtu = data.get("mtu")
    if mtu is not None and (isinstance(mtu, bool) or not isinstance(mtu, int)):
        raise ValueError(f"mtu must be an integer, got {mtu!r}")

    return TunnelOptions(
        name=str(data.get("name", "default")),
        config=data.get("config") or "",
        ipv4=_optional_str(data.get("ipv4")),
        ipv6=_optional_str(data.get("ipv6")),
        mtu=mtu,
        routes=_str_tuple(data.get("routes")),
        log_level=LogLevel(data.get("log_level", "info")),
        magic_dns=bool(data.get("magic_dns", False)),
        dns=_str_tuple(data.get("dns")),
        encryption=bool(data.get("encryption", True)),
    )


def dump_options(options: TunnelOptions) -> str:
    """Serialize options back to profile YAML."""
    data: dict = {
        "name": options.name,
        "config": options.config,
        "log_level": options.log_level.value,
        "magic_dns": options.magic_dns,
        "encryption": options.encryption,
    }
    for key in ("ipv4", "ipv6", "mtu"):
        value = getattr(options, key)
        if value is not None:
            data[key] = value
    if options.routes:
        data["routes"] = list(options.routes)
    if options.dns:
        data["dns"] = list(options.dns)
    result: str = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    return result


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _str_tuple(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"Expected a list of strings, got {value!r}")
    return tuple(str(v) for v in value if str(v).strip())
