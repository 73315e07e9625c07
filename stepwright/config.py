"""Job source loading and validation.

A job source is a YAML document::

    concurrency: 3
    output_dir: ./results
    scrapers:
      - name: shop
        url: https://shop.example.com
        steps:
          - action: navigate
            params: {url: "https://shop.example.com/catalog"}
          - action: extract
            params:
              selector: .product
              fields:
                - {name: title, selector: h2}
                - {name: link, selector: a, attribute: href}

Upper-case ``${VAR}``/``$VAR`` tokens in string values are replaced from
the environment (and a ``.env`` file) after parsing. The document is
validated with pydantic and converted into the frozen dataclasses of ``stepwright.data_types``. Validation is
fail-fast: the first problem raises ConfigValidationError and nothing runs.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from stepwright.common.exceptions import ConfigLoadError, ConfigValidationError
from stepwright.data_types import (
    DEFAULT_CONCURRENCY,
    DEFAULT_OUTPUT_DIR,
    ActionKind,
    ClickStep,
    ExtractField,
    ExtractStep,
    FillStep,
    JobDefinition,
    LoopStep,
    NavigateBackStep,
    NavigateStep,
    PaginateStep,
    RunConfig,
    SessionLoadStep,
    SessionSaveStep,
    StepDefinition,
    Viewport,
    WaitStep,
)

logger = logging.getLogger(__name__)

_ENV_TOKEN = re.compile(r"\$\{([A-Z0-9_]+)\}|\$([A-Z0-9_]+)\b")


def interpolate_env(
    text: str, environ: Mapping[str, str] | None = None
) -> str:
    """Replace ``${VAR}`` and ``$VAR`` with environment values.

    Only upper-case names are recognized, so loop tokens such as
    ``${index}`` survive. Unknown variables are left untouched.
    """
    env = os.environ if environ is None else environ

    def replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return env.get(name) or match.group(0)

    return _ENV_TOKEN.sub(replace, text)


def _interpolate_scalars(node: Any, environ: Mapping[str, str]) -> Any:
    """Apply ``interpolate_env`` to every string value of a parsed document."""
    if isinstance(node, str):
        return interpolate_env(node, environ)
    if isinstance(node, dict):
        return {
            key: _interpolate_scalars(value, environ)
            for key, value in node.items()
        }
    if isinstance(node, list):
        return [_interpolate_scalars(item, environ) for item in node]
    return node


# =============================================================================
# Step parameter models
# =============================================================================


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class NavigateParams(_Model):
    url: str
    timeout: PositiveInt = 30000
    retries: NonNegativeInt = 0


class WaitParams(_Model):
    selector: str | None = None
    duration: NonNegativeInt | None = None
    timeout: PositiveInt = 10000

    @model_validator(mode="after")
    def _selector_or_duration(self) -> WaitParams:
        if self.selector is None and self.duration is None:
            raise ValueError('either "selector" or "duration" is required')
        return self


class ClickParams(_Model):
    selector: str
    timeout: PositiveInt = 10000


class FillParams(_Model):
    selector: str
    value: str
    timeout: PositiveInt = 10000


class FieldModel(_Model):
    name: str = Field(min_length=1)
    selector: str
    attribute: str | None = None

    def to_field(self) -> ExtractField:
        return ExtractField(self.name, self.selector, self.attribute)


class ExtractParams(_Model):
    selector: str
    fields: list[FieldModel] = Field(min_length=1)


class PaginateParams(_Model):
    selector: str
    max_pages: PositiveInt = 10
    item_selector: str | None = Field(default=None, alias="itemSelector")
    fields: Annotated[list[FieldModel], Field(min_length=1)] | None = None
    timeout: PositiveInt = 10000


class LoopParams(_Model):
    selector: str
    steps: list[StepModel] = Field(min_length=1)
    max_iterations: PositiveInt | None = None
    delay_between_iterations: NonNegativeInt = Field(
        default=1000, alias="delayBetweenIterations"
    )
    timeout: PositiveInt = 10000


class NavigateBackParams(_Model):
    count: PositiveInt = 1
    timeout: PositiveInt = 10000


class SessionParams(_Model):
    session_name: str = Field(min_length=1, alias="sessionName")
    sessions_dir: str | None = Field(default=None, alias="sessionsDir")


# =============================================================================
# Step models, discriminated on ``action``
# =============================================================================


class NavigateStepModel(_Model):
    action: Literal["navigate"]
    params: NavigateParams

    def to_step(self) -> NavigateStep:
        return NavigateStep(**self.params.model_dump())


class WaitStepModel(_Model):
    action: Literal["wait"]
    params: WaitParams

    def to_step(self) -> WaitStep:
        return WaitStep(**self.params.model_dump())


class ClickStepModel(_Model):
    action: Literal["click"]
    params: ClickParams

    def to_step(self) -> ClickStep:
        return ClickStep(**self.params.model_dump())


class FillStepModel(_Model):
    action: Literal["fill"]
    params: FillParams

    def to_step(self) -> FillStep:
        return FillStep(**self.params.model_dump())


class ExtractStepModel(_Model):
    action: Literal["extract"]
    params: ExtractParams

    def to_step(self) -> ExtractStep:
        return ExtractStep(
            selector=self.params.selector,
            fields=tuple(f.to_field() for f in self.params.fields),
        )


class PaginateStepModel(_Model):
    action: Literal["paginate"]
    params: PaginateParams

    def to_step(self) -> PaginateStep:
        params = self.params
        return PaginateStep(
            selector=params.selector,
            max_pages=params.max_pages,
            item_selector=params.item_selector,
            fields=(
                tuple(f.to_field() for f in params.fields)
                if params.fields is not None
                else None
            ),
            timeout=params.timeout,
        )


class LoopStepModel(_Model):
    action: Literal["loop"]
    params: LoopParams

    def to_step(self) -> LoopStep:
        params = self.params
        return LoopStep(
            selector=params.selector,
            steps=tuple(step.to_step() for step in params.steps),
            max_iterations=params.max_iterations,
            delay_between_iterations=params.delay_between_iterations,
            timeout=params.timeout,
        )


class NavigateBackStepModel(_Model):
    action: Literal["navigate-back"]
    params: NavigateBackParams = Field(default_factory=NavigateBackParams)

    def to_step(self) -> NavigateBackStep:
        return NavigateBackStep(**self.params.model_dump())


class SessionLoadStepModel(_Model):
    action: Literal["session-load"]
    params: SessionParams

    def to_step(self) -> SessionLoadStep:
        return SessionLoadStep(**self.params.model_dump())


class SessionSaveStepModel(_Model):
    action: Literal["session-save"]
    params: SessionParams

    def to_step(self) -> SessionSaveStep:
        return SessionSaveStep(**self.params.model_dump())


StepModel = Annotated[
    Union[
        NavigateStepModel,
        WaitStepModel,
        ClickStepModel,
        FillStepModel,
        ExtractStepModel,
        PaginateStepModel,
        LoopStepModel,
        NavigateBackStepModel,
        SessionLoadStepModel,
        SessionSaveStepModel,
    ],
    Field(discriminator="action"),
]

LoopParams.model_rebuild()
LoopStepModel.model_rebuild()

_STEP_ADAPTER: TypeAdapter[Any] = TypeAdapter(StepModel)


# =============================================================================
# Job and run models
# =============================================================================


class ViewportModel(_Model):
    width: PositiveInt
    height: PositiveInt


class ScraperModel(_Model):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    steps: list[StepModel] = Field(min_length=1)
    headless: bool = True
    viewport: ViewportModel | None = None

    def to_job(self) -> JobDefinition:
        return JobDefinition(
            name=self.name,
            url=self.url,
            steps=tuple(step.to_step() for step in self.steps),
            headless=self.headless,
            viewport=(
                Viewport(self.viewport.width, self.viewport.height)
                if self.viewport is not None
                else None
            ),
        )


class RunConfigModel(_Model):
    concurrency: PositiveInt = DEFAULT_CONCURRENCY
    output_dir: str = DEFAULT_OUTPUT_DIR
    scrapers: list[ScraperModel] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_names(self) -> RunConfigModel:
        seen: set[str] = set()
        for scraper in self.scrapers:
            if scraper.name in seen:
                raise ValueError(f'duplicate scraper name "{scraper.name}"')
            seen.add(scraper.name)
        return self

    def to_run_config(self) -> RunConfig:
        return RunConfig(
            jobs=tuple(scraper.to_job() for scraper in self.scrapers),
            concurrency=self.concurrency,
            output_dir=self.output_dir,
        )


# =============================================================================
# Loading
# =============================================================================

_ACTION_TAGS = {kind.value for kind in ActionKind}


def _format_loc(loc: tuple[int | str, ...]) -> str:
    """``('scrapers', 0, 'steps', 2, 'click', 'params')`` -> ``scrapers[0].steps[2].params``.

    Discriminator tags inserted by pydantic are dropped.
    """
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif part not in _ACTION_TAGS:
            path += f".{part}" if path else part
    return path or "root"


def _to_config_error(error: ValidationError) -> ConfigValidationError:
    first = error.errors()[0]
    expected = None
    ctx = first.get("ctx") or {}
    if "expected_tags" in ctx:
        expected = f"one of {ctx['expected_tags']}"
    elif "expected" in ctx:
        expected = str(ctx["expected"])
    return ConfigValidationError(
        first["msg"], _format_loc(tuple(first["loc"])), expected
    )


def parse_config(raw: Any) -> RunConfig:
    """Validate a parsed YAML document.

    Raises:
        ConfigValidationError: On the first problem found.
    """
    if not isinstance(raw, Mapping):
        raise ConfigValidationError(
            "configuration must be a mapping", "root", "a YAML mapping"
        )
    try:
        model = RunConfigModel.model_validate(raw)
    except ValidationError as e:
        raise _to_config_error(e) from e
    return model.to_run_config()


def load_config(
    path: str | Path, environ: Mapping[str, str] | None = None
) -> RunConfig:
    """Read, parse, interpolate and validate a YAML job source.

    Environment variables are substituted into string values after
    parsing, so a value can never change the document's structure. When
    ``environ`` is not given, a ``.env`` file in the working directory is
    loaded into the process environment first; variables already set win.

    Raises:
        ConfigLoadError: If the file is missing or is not valid YAML.
        ConfigValidationError: If the document is not a valid run.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigLoadError(
            f"Configuration file not found: {config_path}", str(config_path)
        )
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(
            f"Could not read configuration: {e}", str(config_path)
        ) from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigLoadError(
            f"Invalid YAML: {e}", str(config_path)
        ) from e

    if environ is None:
        load_dotenv(Path.cwd() / ".env", override=False)
        environ = os.environ
    config = parse_config(_interpolate_scalars(raw, environ))
    logger.debug(
        f"Loaded {len(config.jobs)} job(s) from {config_path}",
        extra={"config": str(config_path)},
    )
    return config


def step_from_dict(raw: Mapping[str, Any]) -> StepDefinition:
    """Validate a single ``{action, params}`` mapping into a step."""
    try:
        model = _STEP_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise _to_config_error(e) from e
    return model.to_step()
