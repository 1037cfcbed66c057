"""Insight widgets: a pydantic tagged union plus a tolerant normalizer.

Each widget kind is its own model; ``Widget`` discriminates on ``type``.
``normalize_widgets`` validates every element of a model-produced ``widgets``
list independently and drops the ones that do not validate, so one bad entry
never costs the caller the rest of the insight.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from core.logging import logger

__all__ = [
    "MetricWidget",
    "TextWidget",
    "ChartWidget",
    "MapWidget",
    "GeneratedImageWidget",
    "WeatherWidget",
    "RecipeWidget",
    "Widget",
    "InsightPayload",
    "normalize_widgets",
]

RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

# Discriminator spellings models emit that map onto a canonical kind
_CHART_TYPES = ("bar", "line", "area", "radial")
_KIND_ALIASES = {"generatedImage": "generated_image", "image": "generated_image"}


class _WidgetBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # An explicit null is treated as absent so optional fields fall back to defaults.
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Link(_WidgetBase):
    title: str = ""
    url: RequiredStr


class DataPoint(_WidgetBase):
    name: RequiredStr
    value: float
    fill: Optional[str] = None


class ForecastHour(_WidgetBase):
    time: RequiredStr
    temp: float
    icon: str = "sun"


class MetricWidget(_WidgetBase):
    type: Literal["metric"] = "metric"
    title: RequiredStr
    value: RequiredStr
    unit: str = ""
    icon: str = "SparklesIcon"
    color: str = "text-indigo-400"

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)):
            return str(v)
        return v


class TextWidget(_WidgetBase):
    type: Literal["text"] = "text"
    title: RequiredStr
    content: RequiredStr
    icon: str = "SparklesIcon"
    links: List[Link] = Field(default_factory=list)

    @field_validator("links", mode="before")
    @classmethod
    def _keep_valid_links(cls, v: Any) -> Any:
        # Links are optional decoration; drop malformed ones instead of the widget.
        if not isinstance(v, list):
            return []
        return [link for link in v if isinstance(link, dict) and link.get("url")]


class ChartWidget(_WidgetBase):
    type: Literal["chart"] = "chart"
    chart_type: Literal["bar", "line", "area", "radial"] = Field("bar", alias="chartType")
    title: RequiredStr
    data: List[DataPoint] = Field(default_factory=list)
    value: Optional[float] = None
    label: str = ""
    commentary: str = ""
    stroke: str = "#8884d8"
    color: str = "#A855F7"

    @model_validator(mode="after")
    def _check_series(self) -> "ChartWidget":
        if self.chart_type == "radial":
            if self.value is None:
                raise ValueError("radial chart requires a value")
        elif not self.data:
            raise ValueError(f"{self.chart_type} chart requires data points")
        return self


class MapWidget(_WidgetBase):
    type: Literal["map"] = "map"
    title: RequiredStr
    location_query: RequiredStr = Field(..., alias="locationQuery")
    embed_url: str = Field("", alias="embedUrl")


class GeneratedImageWidget(_WidgetBase):
    type: Literal["generated_image"] = "generated_image"
    title: RequiredStr
    prompt: RequiredStr
    image_url: Optional[str] = Field(None, alias="imageUrl")


class WeatherWidget(_WidgetBase):
    type: Literal["weather"] = "weather"
    title: RequiredStr
    location: RequiredStr
    current_temp: float = Field(..., alias="currentTemp")
    condition_icon: str = Field("sun", alias="conditionIcon")
    hourly_forecast: List[ForecastHour] = Field(default_factory=list, alias="hourlyForecast")


class RecipeWidget(_WidgetBase):
    type: Literal["recipe"] = "recipe"
    name: RequiredStr
    ingredients: List[RequiredStr] = Field(..., min_length=1)
    quick_instructions: RequiredStr
    source_url: str = Field("", alias="sourceUrl")
    image_url: Optional[str] = Field(None, alias="imageUrl")


Widget = Annotated[
    Union[
        MetricWidget,
        TextWidget,
        ChartWidget,
        MapWidget,
        GeneratedImageWidget,
        WeatherWidget,
        RecipeWidget,
    ],
    Field(discriminator="type"),
]

_WIDGET_ADAPTER: TypeAdapter = TypeAdapter(Widget)


class InsightPayload(BaseModel):
    """Normalized structured insight returned to the caller."""
    model_config = ConfigDict(frozen=True)

    widgets: List[Widget]
    title: Optional[str] = None
    dropped: int = 0


def _canonical_kind(item: Dict[str, Any]) -> Dict[str, Any]:
    kind = item.get("type")
    if kind in _CHART_TYPES:
        item = {**item, "type": "chart"}
        item.setdefault("chart_type", kind)
    elif kind in _KIND_ALIASES:
        item = {**item, "type": _KIND_ALIASES[kind]}
    return item


def normalize_widgets(value: Any) -> Optional[InsightPayload]:
    """Validate a decoded ``{"widgets": [...]}`` object (or a bare list).

    Returns None when there is no widget list at all, or when every entry
    was rejected.
    """
    title = None
    if isinstance(value, dict):
        items = value.get("widgets")
        if isinstance(value.get("title"), str):
            title = value["title"]
    else:
        items = value
    if not isinstance(items, list):
        return None

    widgets = []
    dropped = 0
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Dropping widget #{index}: not an object")
            dropped += 1
            continue
        try:
            widgets.append(_WIDGET_ADAPTER.validate_python(_canonical_kind(item)))
        except ValidationError as e:
            logger.warning(f"Dropping widget #{index} of type {item.get('type')!r}: {e.error_count()} validation error(s)")
            dropped += 1

    if items and not widgets:
        return None
    return InsightPayload(widgets=widgets, title=title, dropped=dropped)
