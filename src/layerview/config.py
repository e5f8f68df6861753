"""Configuration parsing for layerview.

A single YAML file feeds the engine. Only the ``view`` section drives the
compiler; the other sections are read-only scalars exposed to templates as
globals.

    identity:
      app_name: Example
    http:
      base_url: https://example.com
    view:
      template_layers:
        app: templates
        acme/shop: vendor/acme/shop/templates
      cache_enabled: true
      vars:
        - var: menu
          call: myapp.menus:main_menu
          include: ["/admin/*"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from layerview.errors import ConfigError


class IdentityConfig(BaseModel):
    """Application identity exposed to templates."""

    app_name: str = Field(default="", description="Application display name")


class HttpConfig(BaseModel):
    """HTTP scalars used by URL helpers."""

    base_url: str = Field(default="", description="Absolute base URL of the app")
    public_root_url: str | None = Field(
        default=None, description="Public root URL, defaults to base_url"
    )


class LocaleConfig(BaseModel):
    """Locale scalars."""

    language: str = Field(default="en", description="Language code")
    charset: str = Field(default="UTF-8", description="Output charset")
    timezone: str | None = Field(default=None, description="Default timezone")


class SecurityConfig(BaseModel):
    """Informational security flags for templates."""

    csrf_protection: bool = False
    honeypot_protection: bool = False
    form_action_switching: bool = False
    captcha_protection: bool = False


class VarRuleConfig(BaseModel):
    """A declarative scoped variable rule.

    Exactly one of ``value`` (static data) or ``call`` (provider) is required.
    ``call`` is either a ``"module:function"`` string or a mapping with
    ``class``/``method`` or ``service``/``method``.
    """

    model_config = {"populate_by_name": True}

    var: str = Field(description="Template variable name")
    value: Any = Field(default=None, description="Static payload")
    call: str | dict[str, str] | None = Field(
        default=None, description="Dynamic provider descriptor"
    )
    include: list[str] = Field(
        default_factory=list, description="Path patterns that activate the rule"
    )
    exclude: list[str] = Field(
        default_factory=list, description="Path patterns that disqualify the rule"
    )

    @model_validator(mode="after")
    def check_payload(self) -> "VarRuleConfig":
        if not self.var:
            raise ValueError("scoped var rules require a non-empty 'var'")
        has_value = "value" in self.model_fields_set
        if has_value == (self.call is not None):
            raise ValueError(
                f"scoped var '{self.var}' needs exactly one of 'value' or 'call'"
            )
        return self


class ViewSection(BaseModel):
    """The template engine section."""

    template_layers: dict[str, str] = Field(
        default_factory=dict, description="Layer id -> template root directory"
    )
    cache_enabled: bool = Field(default=False, description="Reuse compiled artifacts")
    cache_dir: str | None = Field(default=None, description="Compiled artifact dir")
    trim_whitespace: bool = False
    remove_html_comments: bool = False
    allow_inline_code: bool = Field(
        default=True, description="Allow {? ... ?} inline Python in templates"
    )
    asset_version: str = Field(default="", description="Cache-busting token")
    marketing_scripts: str = ""
    view_vars: dict[str, Any] = Field(default_factory=dict)
    icons: dict[str, str] = Field(default_factory=dict)
    vars: list[VarRuleConfig] = Field(default_factory=list)


class ViewConfig(BaseModel):
    """Full layerview configuration."""

    environment: str = Field(default="prod", description="dev, stage or prod")
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    locale: LocaleConfig = Field(default_factory=LocaleConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    view: ViewSection = Field(default_factory=ViewSection)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ViewConfig":
        """Validate a plain mapping, raising ConfigError on bad input."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    @classmethod
    def load(cls, path: Path) -> "ViewConfig":
        """Load config from a yaml file.

        Relative layer roots and cache dir are resolved against the file's
        directory. A missing file yields the defaults.
        """
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")

        config = cls.from_dict(data)
        return config.relative_to(path.parent)

    def relative_to(self, base: Path) -> "ViewConfig":
        """Return a copy with relative directories anchored at ``base``."""
        layers = {
            layer: str(base / root) if root and not Path(root).is_absolute() else root
            for layer, root in self.view.template_layers.items()
        }
        cache_dir = self.view.cache_dir
        if cache_dir and not Path(cache_dir).is_absolute():
            cache_dir = str(base / cache_dir)

        view = self.view.model_copy(
            update={"template_layers": layers, "cache_dir": cache_dir}
        )
        return self.model_copy(update={"view": view})

    @property
    def is_dev(self) -> bool:
        return self.environment == "dev"
