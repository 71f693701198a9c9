"""Endpoint definitions and the endpoint registry."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from ..errors import ConfigError
from ..network import AddressFamily
from ..utils import get_logger

logger = get_logger(__name__)

_HOST_RE = re.compile(r'^(\[[0-9a-fA-F:.]+\]|[A-Za-z0-9_.:-]+)$')


@dataclass(frozen=True)
class Endpoint:
    """A named network target under diagnosis."""
    name: str
    host: str
    port: int = 443
    http_path: Optional[str] = None
    family: AddressFamily = AddressFamily.ANY
    scheme: Optional[str] = None
    expect_status: Tuple[int, ...] = ()

    @property
    def url(self) -> Optional[str]:
        """URL for the HTTP probe, or None when the endpoint has no HTTP check."""
        if self.http_path is None:
            return None
        scheme = self.scheme or ("http" if self.port == 80 else "https")
        default_port = {"http": 80, "https": 443}.get(scheme)
        host = f"[{self.host}]" if ":" in self.host and not self.host.startswith("[") else self.host
        port = "" if self.port == default_port else f":{self.port}"
        path = self.http_path if self.http_path.startswith("/") else f"/{self.http_path}"
        return f"{scheme}://{host}{port}{path}"

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port}"


# Trading APIs probed when no endpoint file is given
_SOL_MINT = "So11111111111111111111111111111111111111112"
_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

DEFAULT_ENDPOINTS: Tuple[Endpoint, ...] = (
    Endpoint(
        name="jupiter-quote",
        host="quote-api.jup.ag",
        http_path=(f"/v6/quote?inputMint={_SOL_MINT}&outputMint={_USDC_MINT}"
                   "&amount=1000000&slippageBps=50"),
    ),
    Endpoint(
        name="jupiter-token",
        host="token.jup.ag",
    ),
    Endpoint(
        name="dexscreener",
        host="api.dexscreener.com",
        http_path=f"/latest/dex/tokens/{_SOL_MINT}",
    ),
)


# File field name -> Endpoint field name
_FIELD_ALIASES = {
    "name": "name",
    "host": "host",
    "port": "port",
    "httpPath": "http_path",
    "http_path": "http_path",
    "path": "http_path",
    "family": "family",
    "scheme": "scheme",
    "expectStatus": "expect_status",
    "expect_status": "expect_status",
}


def _hostname_problem(host: str) -> Optional[str]:
    """Why a host name can never resolve, or None. IP literals are skipped."""
    if ":" in host:
        return None
    name = host[:-1] if host.endswith(".") else host
    if len(name) > 253:
        return "name longer than 253 characters"
    for label in name.split("."):
        if not label:
            return "empty label"
        if len(label) > 63:
            return f"label {label[:16]}... longer than 63 characters"
    return None


def endpoint_from_record(record: Dict[str, Any], index: int = 0) -> Endpoint:
    """
    Build an Endpoint from one record of an endpoint file.

    Raises:
        ConfigError: naming the record and the offending field
    """
    where = f"endpoints[{index}]"
    if not isinstance(record, dict):
        raise ConfigError("expected a mapping with name/host fields", field=where)

    values: Dict[str, Any] = {}
    for key, value in record.items():
        target = _FIELD_ALIASES.get(key)
        if target is None:
            raise ConfigError(f"unknown field {key!r}", field=where)
        values[target] = value

    name = values.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError("missing or empty 'name'", field=f"{where}.name")
    where = f"endpoint {name!r}"

    host = values.get("host")
    if not isinstance(host, str) or not _HOST_RE.match(host.strip()):
        raise ConfigError(f"invalid host {host!r}", field=f"{where}.host")
    problem = _hostname_problem(host.strip())
    if problem:
        raise ConfigError(f"invalid host {host!r}: {problem}", field=f"{where}.host")

    port = values.get("port", 443)
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
        raise ConfigError(f"port must be an integer 1-65535, got {port!r}", field=f"{where}.port")

    http_path = values.get("http_path")
    if http_path is not None and not isinstance(http_path, str):
        raise ConfigError("httpPath must be a string", field=f"{where}.httpPath")

    try:
        family = AddressFamily.parse(values.get("family", "any"))
    except ValueError as e:
        raise ConfigError(str(e), field=f"{where}.family") from None

    scheme = values.get("scheme")
    if scheme is not None and scheme not in ("http", "https"):
        raise ConfigError("scheme must be http or https", field=f"{where}.scheme")

    expect = values.get("expect_status", ())
    if isinstance(expect, int) and not isinstance(expect, bool):
        expect = (expect,)
    if (not isinstance(expect, (list, tuple))
            or not all(isinstance(c, int) and 100 <= c <= 599 for c in expect)):
        raise ConfigError("expectStatus must be a list of HTTP status codes",
                          field=f"{where}.expectStatus")

    return Endpoint(
        name=name.strip(),
        host=host.strip(),
        port=port,
        http_path=http_path,
        family=family,
        scheme=scheme,
        expect_status=tuple(expect),
    )


def load_endpoints_file(filepath: Path) -> List[Endpoint]:
    """
    Load endpoints from a JSON or YAML file.

    The file holds either a list of records or a mapping with an
    "endpoints" list.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise ConfigError(f"endpoint file not found: {filepath}", field="endpoints")

    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            if filepath.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"{filepath}: cannot parse ({e})", field="endpoints") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"{filepath}: not UTF-8 text ({e})", field="endpoints") from e
    except OSError as e:
        raise ConfigError(f"{filepath}: cannot read ({e.strerror or e})",
                          field="endpoints") from e

    if isinstance(data, dict):
        data = data.get("endpoints")
    if not isinstance(data, list):
        raise ConfigError(f"{filepath}: expected a list of endpoints", field="endpoints")

    endpoints = [endpoint_from_record(record, i) for i, record in enumerate(data)]
    logger.info(f"Loaded {len(endpoints)} endpoints from {filepath}")
    return endpoints


class EndpointRegistry:
    """
    Fixed, ordered list of endpoints for one run.
    """

    def __init__(self, endpoints: Iterable[Endpoint]):
        endpoints = tuple(endpoints)
        seen = set()
        for endpoint in endpoints:
            if endpoint.name in seen:
                raise ConfigError(f"duplicate endpoint name {endpoint.name!r}", field="endpoints")
            seen.add(endpoint.name)
        self._endpoints = endpoints

    def list(self) -> Tuple[Endpoint, ...]:
        """Endpoints in registration order."""
        return self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)

    def __iter__(self):
        return iter(self._endpoints)

    @classmethod
    def from_options(
        cls,
        endpoints: Optional[Sequence[Endpoint]] = None,
        extend: bool = False,
        exclude: Sequence[str] = (),
        defaults: Sequence[Endpoint] = DEFAULT_ENDPOINTS
    ) -> "EndpointRegistry":
        """
        Build the registry from the defaults and the configured overrides.

        Args:
            endpoints: Endpoints replacing the defaults, or added to them
                when extend is set
            extend: Append endpoints to the defaults instead of replacing them
            exclude: Names to drop from the final list

        Raises:
            ConfigError: on unknown exclusions, duplicates or an empty list
        """
        if endpoints is None:
            selected = list(defaults)
        elif extend:
            selected = list(defaults) + list(endpoints)
        else:
            selected = list(endpoints)

        names = {e.name for e in selected}
        unknown = [n for n in exclude if n not in names]
        if unknown:
            raise ConfigError(f"no endpoint named {', '.join(map(repr, unknown))}",
                              field="exclude")

        selected = [e for e in selected if e.name not in set(exclude)]
        if not selected:
            raise ConfigError("no endpoints left to probe", field="endpoints")

        return cls(selected)
