"""Pydantic configuration models for httplane clients."""

from concurrent.futures import Executor
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from ..http.auth import Authenticator

DEFAULT_USER_AGENT = "httplane/1.0"


class RedirectPolicy(str, Enum):
    """Whether and which 3xx responses trigger a follow-up request."""

    NEVER = "never"
    ALWAYS = "always"
    NORMAL = "normal"  # like ALWAYS, except https -> http


class HttpVersion(str, Enum):
    """HTTP protocol versions, as written on the wire."""

    HTTP_1_0 = "HTTP/1.0"
    HTTP_1_1 = "HTTP/1.1"
    HTTP_2 = "HTTP/2"


class AuthType(str, Enum):
    """Credential sources a client can be configured with."""

    NONE = "none"
    BASIC = "basic"


def _expand_env_var(value: Optional[str]) -> Optional[str]:
    """Expand environment variable references in a string.

    Supports $VAR and ${VAR} syntax. Returns original value if
    the env var is not set.
    """
    import os
    import re

    if value is None:
        return None

    pattern = r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)"

    def replace(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replace, value)


class AuthConfig(BaseModel):
    """Credentials answered to Basic challenges.

    The password supports environment variable expansion so that secrets
    can stay out of config files:
        auth:
          type: basic
          username: admin
          password: ${API_PASSWORD}
    """

    type: AuthType = Field(AuthType.NONE, description="Authentication type")
    username: Optional[str] = Field(None, description="Username for basic auth")
    password: Optional[str] = Field(None, description="Password for basic auth")

    model_config = {"extra": "forbid"}

    def model_post_init(self, __context: object) -> None:
        """Expand environment variables in the password after init."""
        if self.password:
            object.__setattr__(self, "password", _expand_env_var(self.password))


class ClientConfig(BaseModel):
    """
    Immutable configuration snapshot for an HttpClient.

    Example:
        config = ClientConfig(
            redirect_policy=RedirectPolicy.NORMAL,
            request_timeout=30,
            auth=AuthConfig(type=AuthType.BASIC, username="admin", password="$PW"),
        )

    YAML format:
        redirect_policy: normal
        max_redirects: 10
        request_timeout: 30
        auth:
          type: basic
          username: admin
          password: ${PW}

    The authenticator and executor fields only exist at runtime; they are
    never serialized.
    """

    redirect_policy: RedirectPolicy = Field(
        RedirectPolicy.NEVER,
        description="Redirect policy applied to every request of the client",
    )
    max_redirects: int = Field(20, ge=0, description="Maximum redirect hops per request")
    version: HttpVersion = Field(HttpVersion.HTTP_1_1, description="Preferred protocol version")
    connect_timeout: Optional[float] = Field(10.0, gt=0, description="TCP/TLS connect timeout in seconds")
    request_timeout: Optional[float] = Field(
        None,
        gt=0,
        description="Overall deadline per request in seconds (None = no deadline)",
    )
    user_agent: str = Field(DEFAULT_USER_AGENT, description="User-Agent header value")
    verify_tls: bool = Field(True, description="Verify server certificates")
    ca_bundle: Optional[Path] = Field(None, description="CA bundle used instead of the system store")
    max_idle_connections_per_host: int = Field(
        8,
        ge=0,
        description="Idle keep-alive connections kept per host (0 disables reuse)",
    )
    idle_connection_timeout: float = Field(30.0, gt=0, description="Seconds an idle connection is kept")
    worker_threads: Optional[int] = Field(
        None,
        ge=1,
        description="Size of a client-owned worker pool (None = shared default pool)",
    )
    auth: AuthConfig = Field(default_factory=AuthConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("WARNING", description="Logging level")
    log_file: Optional[Path] = Field(None, description="Log file path")

    authenticator: Optional[Any] = Field(None, exclude=True, description="Authenticator hook")
    executor: Optional[Executor] = Field(None, exclude=True, description="Worker pool for send_async")

    model_config = {"extra": "forbid", "frozen": True, "arbitrary_types_allowed": True}

    @field_validator("authenticator")
    @classmethod
    def _check_authenticator(cls, value: Any) -> Any:
        if value is not None and not callable(getattr(value, "challenge", None)):
            raise ValueError("authenticator must provide a challenge(realm, host) method")
        return value

    def resolve_authenticator(self) -> Optional["Authenticator"]:
        """Return the explicit authenticator, or one built from ``auth``."""
        if self.authenticator is not None:
            return self.authenticator
        if self.auth.type == AuthType.BASIC:
            from ..http.auth import StaticAuthenticator

            return StaticAuthenticator.from_config(self.auth)
        return None

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ClientConfig":
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "ClientConfig":
        """Load config from YAML file."""
        return cls.from_yaml(Path(path).read_text())
