"""
Tenant resolution from inbound requests ("elevators").

An elevator maps a request to a tenant id or None. Named elevators:
    subdomain  acme.example.com       -> "acme"  (needs 3+ host labels)
    domain     acme.com               -> "acme.com"
    header     X-Tenant: acme         -> "acme"
    path       example.com/acme/items -> "acme"
A callable elevator receives the RequestInfo and returns the id itself.

Built-in exclusions ("www" for subdomains; api, admin, assets, ... for
paths) are always merged with the configured ones at resolution time.
A name with no resolver resolves to None rather than raising.
"""

from typing import Callable, Dict, List, Optional

from werkzeug.wrappers import Request

from tenantscope.config import TenantConfig

DEFAULT_EXCLUDED_SUBDOMAINS = frozenset({'www'})
DEFAULT_EXCLUDED_PATHS = frozenset({
    'api', 'admin', 'assets', 'images', 'stylesheets', 'javascripts', 'rails',
})
TENANT_HEADER = 'X-Tenant'


class RequestInfo:
    """
    The slice of a request that elevators look at.

    Wraps a werkzeug Request (Flask's request object is one).
    """

    def __init__(self, request: Request):
        self.request = request

    @classmethod
    def from_environ(cls, environ: dict) -> 'RequestInfo':
        return cls(Request(environ))

    @property
    def host(self) -> str:
        """Host name without port."""
        host = self.request.host or ''
        if host.startswith('['):
            # IPv6 literal, e.g. [::1]:8080
            return host.split(']')[0] + ']'
        return host.split(':')[0]

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def path_segments(self) -> List[str]:
        return [segment for segment in self.path.split('/') if segment]

    def header(self, name: str) -> Optional[str]:
        return self.request.headers.get(name)

    def param(self, name: str) -> Optional[str]:
        return self.request.args.get(name)

    def __repr__(self) -> str:
        return f"<RequestInfo host={self.host!r} path={self.path!r}>"


def extract_subdomain(request: RequestInfo, config: TenantConfig = None) -> Optional[str]:
    parts = request.host.split('.')
    if len(parts) < 3:
        return None

    subdomain = parts[0]
    configured = config.excluded_subdomains if config else ()
    if subdomain in DEFAULT_EXCLUDED_SUBDOMAINS or subdomain in configured:
        return None
    return subdomain


def extract_domain(request: RequestInfo, config: TenantConfig = None) -> Optional[str]:
    return request.host or None


def extract_header(request: RequestInfo, config: TenantConfig = None) -> Optional[str]:
    return request.header(TENANT_HEADER)


def extract_path(request: RequestInfo, config: TenantConfig = None) -> Optional[str]:
    segments = request.path_segments
    if not segments:
        return None

    candidate = segments[0]
    configured = config.excluded_paths if config else ()
    if candidate in DEFAULT_EXCLUDED_PATHS or candidate in configured:
        return None
    return candidate


ELEVATORS: Dict[str, Callable[[RequestInfo, Optional[TenantConfig]], Optional[str]]] = {
    'subdomain': extract_subdomain,
    'domain': extract_domain,
    'header': extract_header,
    'path': extract_path,
}


def resolve_tenant(request: RequestInfo, elevator, config: TenantConfig = None) -> Optional[str]:
    """
    Resolve a tenant id from a request.

    Args:
        request: RequestInfo for the inbound request
        elevator: Elevator name or callable(RequestInfo) -> Optional[str]
        config: Active configuration (for exclusion lists), may be None

    Returns:
        Tenant id, or None when nothing was detected. An empty string from
        a custom elevator also counts as nothing detected.
    """
    if callable(elevator):
        tenant = elevator(request)
    else:
        extractor = ELEVATORS.get(elevator)
        if extractor is None:
            return None
        tenant = extractor(request, config)

    return tenant or None
