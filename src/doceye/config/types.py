"""Type definitions for the configuration system.

Site configuration is declarative: each monitored site is a URL, an ordered
list of navigation steps and a set of extraction rules. Steps are modelled as
a tagged union on ``action`` so that an unknown action is rejected when the
configuration is read instead of in the middle of a run.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ConfigError(Exception):
    """Base exception for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Exception raised when configuration loading fails."""

    pass


class ConfigModel(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# Navigation steps


class StepBase(ConfigModel):
    """Fields shared by every navigation step."""

    optional: bool = False
    retries: int = 1
    timeout: Optional[int] = None  # milliseconds

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v):
        if v < 0:
            raise ValueError("Step retries cannot be negative")
        return v

    def summary(self) -> dict[str, Any]:
        """Compact representation used in logs and error records."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude_defaults=True) | {
            "action": self.action
        }

    def describe(self) -> str:
        selector = getattr(self, "selector", None)
        return f"{self.action} {selector}" if selector else self.action


class ClickStep(StepBase):
    action: Literal["click"] = "click"
    selector: str


class WaitForSelectorStep(StepBase):
    action: Literal["waitForSelector"] = "waitForSelector"
    selector: str
    state: Literal["attached", "detached", "visible", "hidden"] = "visible"


class FillStep(StepBase):
    action: Literal["fill"] = "fill"
    selector: str
    value: str


class TypeStep(StepBase):
    action: Literal["type"] = "type"
    selector: str
    value: str
    delay: int = 50


class PressStep(StepBase):
    action: Literal["press"] = "press"
    key: str
    selector: Optional[str] = None


class ScrollStep(StepBase):
    action: Literal["scroll"] = "scroll"
    selector: Optional[str] = None
    distance: int = 500


class WaitStep(StepBase):
    action: Literal["wait"] = "wait"
    duration: int = 1000

    @model_validator(mode="before")
    @classmethod
    def accept_value_as_duration(cls, data):
        if isinstance(data, dict) and "duration" not in data and "value" in data:
            data = {**data, "duration": data["value"]}
        return data


class WaitAjaxStep(StepBase):
    action: Literal["wait_ajax"] = "wait_ajax"


class WaitForNavigationStep(StepBase):
    action: Literal["waitForNavigation"] = "waitForNavigation"
    wait_until: Literal["load", "domcontentloaded", "networkidle"] = "load"


class SelectStep(StepBase):
    action: Literal["select"] = "select"
    selector: str
    value: str


class HoverStep(StepBase):
    action: Literal["hover"] = "hover"
    selector: str


class CheckStep(StepBase):
    action: Literal["check"] = "check"
    selector: str


class UncheckStep(StepBase):
    action: Literal["uncheck"] = "uncheck"
    selector: str


class EvaluateStep(StepBase):
    action: Literal["evaluate"] = "evaluate"
    script: str


class GotoStep(StepBase):
    action: Literal["goto"] = "goto"
    url: str
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = (
        "domcontentloaded"
    )


class AuthenticateStep(StepBase):
    """Fill a login form. ``user`` and ``password`` may be ``${ENV_VAR}`` references."""

    action: Literal["authenticate"] = "authenticate"
    user_selector: str
    pass_selector: str
    submit_selector: str
    user: str
    password: str = Field(alias="pass")

    def summary(self) -> dict[str, Any]:
        # Never leak credentials into logs or the state file
        return {
            "action": self.action,
            "userSelector": self.user_selector,
            "submitSelector": self.submit_selector,
        }


Step = Annotated[
    Union[
        ClickStep,
        WaitForSelectorStep,
        FillStep,
        TypeStep,
        PressStep,
        ScrollStep,
        WaitStep,
        WaitAjaxStep,
        WaitForNavigationStep,
        SelectStep,
        HoverStep,
        CheckStep,
        UncheckStep,
        EvaluateStep,
        GotoStep,
        AuthenticateStep,
    ],
    Field(discriminator="action"),
]


# Extraction


class FieldRule(ConfigModel):
    """How to pull one value out of a list item element."""

    selector: str = "."
    attribute: Optional[str] = None
    property_name: Optional[str] = Field(default=None, alias="property")
    regex: Optional[str] = None
    url_template: Optional[str] = None
    optional: bool = False

    @model_validator(mode="before")
    @classmethod
    def accept_bare_selector(cls, data):
        if isinstance(data, str):
            # "@href" reads an attribute of the item element itself
            if data.startswith("@"):
                return {"selector": ".", "attribute": data[1:]}
            return {"selector": data}
        return data

    @property
    def targets_self(self) -> bool:
        return self.selector in ("", ".")


class FilterPatterns(ConfigModel):
    field: str
    patterns: list[str] = Field(default_factory=list)
    mode: Literal["include", "exclude"] = "include"


class DeepSearchConfig(ConfigModel):
    enabled: bool = False
    selector: str = "a[href]"
    attribute: str = "href"


class ExtractionConfig(ConfigModel):
    list_selector: str
    fields: dict[str, FieldRule]
    filter_patterns: Optional[FilterPatterns] = None
    deep_search: Optional[DeepSearchConfig] = None

    @property
    def deep_search_enabled(self) -> bool:
        return bool(self.deep_search and self.deep_search.enabled)


class SiteConfig(ConfigModel):
    """Configuration for one monitored site."""

    id: str
    name: str
    url: str
    enabled: bool = True
    steps: list[Step] = Field(default_factory=list)
    extraction: ExtractionConfig
    timeout: Optional[int] = None  # milliseconds
    download_timeout: Optional[int] = None  # milliseconds
    retries: int = 2

    @field_validator("id", "url")
    @classmethod
    def validate_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v):
        if v < 0:
            raise ValueError("Retries cannot be negative")
        return v


class TelegramCredentials(ConfigModel):
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None

    @field_validator("chat_id", mode="before")
    @classmethod
    def coerce_chat_id(cls, v):
        # Chat ids are frequently written as bare (negative) integers
        return str(v) if isinstance(v, int) else v


class InvalidSite:
    """A site entry that could not be parsed, kept so the run can report it."""

    def __init__(self, site_id: str, name: str, error: str, enabled: bool = True):
        self.id = site_id
        self.name = name
        self.error = error
        self.enabled = enabled

    def __repr__(self) -> str:
        return f"InvalidSite(id={self.id!r}, error={self.error!r})"


class MonitorConfiguration:
    """Parsed configuration document."""

    def __init__(
        self,
        sites: Optional[list[SiteConfig]] = None,
        invalid_sites: Optional[list[InvalidSite]] = None,
        telegram: Optional[TelegramCredentials] = None,
    ):
        self.sites = sites or []
        self.invalid_sites = invalid_sites or []
        self.telegram = telegram or TelegramCredentials()

    def __repr__(self) -> str:
        return (
            f"MonitorConfiguration(sites={len(self.sites)}, "
            f"invalid_sites={len(self.invalid_sites)})"
        )
