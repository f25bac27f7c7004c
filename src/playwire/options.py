"""Launch and context options with client-side validation.

Options are validated locally before anything is sent, so conflicting or
malformed options fail with ValidationError without a driver round trip.
Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from playwire.exceptions import ValidationError

_MODEL_CONFIG = ConfigDict(
    alias_generator=AliasGenerator(serialization_alias=to_camel),
    extra="forbid",
    arbitrary_types_allowed=True,
)

# Wire names that to_camel does not produce.
_WIRE_NAMES = {
    "extra_http_headers": "extraHTTPHeaders",
    "ignore_https_errors": "ignoreHTTPSErrors",
    "bypass_csp": "bypassCSP",
    "base_url": "baseURL",
    "handle_sigint": "handleSIGINT",
    "handle_sigterm": "handleSIGTERM",
    "handle_sighup": "handleSIGHUP",
}


class ViewportSize(BaseModel):
    """Viewport size in CSS pixels."""

    model_config = _MODEL_CONFIG

    width: int = Field(ge=0)
    height: int = Field(ge=0)


class Geolocation(BaseModel):
    """Emulated position. Accuracy is in meters."""

    model_config = _MODEL_CONFIG

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)


class ProxySettings(BaseModel):
    """Network proxy used by the browser."""

    model_config = _MODEL_CONFIG

    server: str
    bypass: str | None = None
    username: str | None = None
    password: str | None = None


class HttpCredentials(BaseModel):
    model_config = _MODEL_CONFIG

    username: str
    password: str


class _Options(BaseModel):
    model_config = _MODEL_CONFIG

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> _Options:
        """Validate keyword options.

        Raises:
            ValidationError: On unknown options, bad values or conflicts.
        """
        try:
            return cls(**kwargs)
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    def to_params(self) -> dict[str, Any]:
        """Serialize to protocol params, dropping unset options."""
        params = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        for field_name, wire_name in _WIRE_NAMES.items():
            camel = to_camel(field_name)
            if camel in params:
                params[wire_name] = params.pop(camel)
        if "extraHTTPHeaders" in params:
            params["extraHTTPHeaders"] = _name_value_list(params["extraHTTPHeaders"])
        return params


class LaunchOptions(_Options):
    """Options accepted by ``BrowserType.launch``."""

    headless: bool | None = None
    executable_path: Path | None = None
    channel: str | None = None
    args: list[str] | None = None
    ignore_default_args: bool | list[str] | None = None
    ignore_all_default_args: bool | None = None
    env: dict[str, str | int | bool] | None = None
    proxy: ProxySettings | None = None
    downloads_path: Path | None = None
    slow_mo: float | None = Field(default=None, ge=0)
    chromium_sandbox: bool | None = None
    handle_sigint: bool | None = None
    handle_sigterm: bool | None = None
    handle_sighup: bool | None = None
    timeout: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_launch_conflicts(self) -> LaunchOptions:
        if self.ignore_all_default_args and isinstance(self.ignore_default_args, list):
            raise ValueError("ignore_all_default_args cannot be combined with an ignore_default_args list")
        for arg in self.args or []:
            if not arg.startswith("-"):
                raise ValueError("Arguments can not specify page to be opened")
            if arg.startswith("--user-data-dir"):
                raise ValueError(
                    "Pass user_data_dir to launch_persistent_context() instead of "
                    "specifying the '--user-data-dir' argument"
                )
            if arg.startswith(("--remote-debugging-pipe", "--remote-debugging-port")):
                raise ValueError("Playwire manages the remote debugging connection itself")
        return self

    def to_params(self) -> dict[str, Any]:
        params = super().to_params()
        ignore = params.pop("ignoreDefaultArgs", None)
        if ignore is True:
            params["ignoreAllDefaultArgs"] = True
        elif isinstance(ignore, list):
            params["ignoreDefaultArgs"] = ignore
        if "env" in params:
            params["env"] = _name_value_list(params["env"])
        return params


class ContextOptions(_Options):
    """Options accepted by ``Browser.new_context`` and ``Browser.new_page``."""

    viewport: ViewportSize | None = None
    no_viewport: bool | None = None
    screen: ViewportSize | None = None
    user_agent: str | None = None
    locale: str | None = None
    timezone_id: str | None = None
    geolocation: Geolocation | None = None
    permissions: list[str] | None = None
    extra_http_headers: dict[str, str] | None = None
    offline: bool | None = None
    http_credentials: HttpCredentials | None = None
    device_scale_factor: float | None = Field(default=None, gt=0)
    is_mobile: bool | None = None
    has_touch: bool | None = None
    java_script_enabled: bool | None = None
    bypass_csp: bool | None = None
    ignore_https_errors: bool | None = None
    color_scheme: Literal["light", "dark", "no-preference", "no-override"] | None = None
    reduced_motion: Literal["reduce", "no-preference", "no-override"] | None = None
    forced_colors: Literal["active", "none", "no-override"] | None = None
    contrast: Literal["more", "no-preference", "no-override"] | None = None
    base_url: str | None = None
    strict_selectors: bool | None = None
    service_workers: Literal["allow", "block"] | None = None

    @model_validator(mode="after")
    def _check_viewport_conflict(self) -> ContextOptions:
        if self.no_viewport and self.viewport is not None:
            raise ValueError("viewport cannot be combined with no_viewport")
        return self

    def to_params(self) -> dict[str, Any]:
        params = super().to_params()
        if params.pop("noViewport", False):
            params["noDefaultViewport"] = True
        return params


class PersistentContextOptions(LaunchOptions, ContextOptions):
    """Options accepted by ``BrowserType.launch_persistent_context``.

    Both parents' validators run, and ``to_params`` chains through both
    parents' conversions.
    """


def _name_value_list(mapping: dict[str, Any]) -> list[dict[str, str]]:
    result = []
    for name, value in mapping.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        result.append({"name": name, "value": str(value)})
    return result


def _describe(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        ctx_error = (error.get("ctx") or {}).get("error")
        if error["type"] == "value_error" and ctx_error is not None:
            messages.append(str(ctx_error))
            continue
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(messages)


def parse_geolocation(geolocation: dict[str, Any]) -> dict[str, Any]:
    """Validate a ``{"latitude", "longitude", "accuracy"?}`` mapping.

    Raises:
        ValidationError: If a coordinate is out of range or a key is unknown.
    """
    try:
        return Geolocation(**geolocation).model_dump(exclude_none=True)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc
