"""Application configuration for the network diagnostic tool."""

import ipaddress
import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import ConfigError

CONFIG_ENV_VAR = "NETDIAG_CONFIG"

FAMILY_CHOICES = ("any", "4", "6")


def split_gateway(value: str) -> Tuple[str, Optional[int]]:
    """
    Split a gateway setting into (ip, port).

    Accepts "8.8.8.8", "8.8.8.8:53", "2001:4860:4860::8888" and
    "[2001:4860:4860::8888]:53". The port is None when not given.

    Raises:
        ValueError: if the address is not an IP literal or the port is bad
    """
    text = value.strip()
    port = None
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        if rest:
            if not rest.startswith(":"):
                raise ValueError(f"bad gateway {value!r}")
            port = rest[1:]
    elif text.count(":") == 1:
        host, port = text.split(":")
    else:
        host = text

    address = ipaddress.ip_address(host)
    if port is not None:
        if not port.isdigit() or not 1 <= int(port) <= 65535:
            raise ValueError(f"bad gateway port in {value!r}")
        port = int(port)
    return str(address), port


@dataclass(frozen=True)
class Config:
    """Application configuration settings, read once at startup."""

    # Probe settings
    default_timeout: float = 5.0  # seconds, per probe
    run_timeout: float = 30.0     # seconds, whole run; 0 disables
    concurrency: int = 8
    family: str = "any"
    fail_fast: bool = False

    # Resolver to query instead of the system ones (e.g. "1.1.1.1")
    nameservers: List[str] = field(default_factory=list)

    # Outside address checked for reachability (e.g. "8.8.8.8"); None skips it
    gateway: Optional[str] = None

    # HTTP settings
    body_excerpt_chars: int = 200

    # Endpoint list replacing the built-in defaults
    endpoints_file: Optional[str] = None

    # Logging
    log_level: str = "WARNING"

    @classmethod
    def load(cls, filepath: Optional[Path] = None) -> "Config":
        """
        Load configuration from file.

        An explicitly given file (argument or environment variable) must
        exist. The default file is optional.
        """
        explicit = filepath is not None
        if filepath is None and os.environ.get(CONFIG_ENV_VAR):
            filepath = Path(os.environ[CONFIG_ENV_VAR])
            explicit = True
        if filepath is None:
            filepath = cls._default_config_path()

        filepath = Path(filepath)
        if not filepath.exists():
            if explicit:
                raise ConfigError(f"config file not found: {filepath}", field="config")
            return cls()

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{filepath}: invalid JSON ({e})", field="config") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"{filepath}: not UTF-8 text ({e})", field="config") from e
        except OSError as e:
            raise ConfigError(f"{filepath}: cannot read ({e.strerror or e})",
                              field="config") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{filepath}: expected a JSON object", field="config")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                f"{filepath}: unknown setting(s) {', '.join(unknown)}", field="config"
            )

        config = cls(**data)
        config.validate()
        return config

    @staticmethod
    def _default_config_path() -> Path:
        """Get the default configuration file path."""
        return Path.home() / ".netdiag" / "config.json"

    def with_overrides(self, **overrides) -> "Config":
        """Return a copy with every non-None override applied, validated."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self) -> None:
        """Check value ranges. Raises ConfigError naming the bad setting."""
        if not isinstance(self.default_timeout, (int, float)) or self.default_timeout <= 0:
            raise ConfigError("must be a positive number of seconds", field="timeout")
        if not isinstance(self.run_timeout, (int, float)) or self.run_timeout < 0:
            raise ConfigError("must be zero (disabled) or a positive number of seconds",
                              field="run_timeout")
        if not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigError("must be an integer >= 1", field="concurrency")
        if str(self.family) not in FAMILY_CHOICES:
            raise ConfigError(f"must be one of {', '.join(FAMILY_CHOICES)}", field="family")
        if not isinstance(self.nameservers, list):
            raise ConfigError("must be a list of addresses", field="nameservers")
        for nameserver in self.nameservers:
            try:
                ipaddress.ip_address(str(nameserver).strip())
            except ValueError:
                raise ConfigError(f"{nameserver!r} is not an IP address",
                                  field="nameservers") from None
        if self.gateway is not None:
            try:
                split_gateway(str(self.gateway))
            except ValueError:
                raise ConfigError(f"{self.gateway!r} is not an IP address[:port]",
                                  field="gateway") from None
        if not isinstance(self.body_excerpt_chars, int) or self.body_excerpt_chars < 0:
            raise ConfigError("must be an integer >= 0", field="body_excerpt_chars")
