"""Presentation formats and the value types handed to the renderer."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bizdata_mcp.errors import ParseError


class DataFormat(str, Enum):
    """How a tool result is presented to the user."""

    MARKDOWN_TABLE = "markdown-table"
    MARKDOWN_TEXT = "markdown-text"
    PIE = "pie"
    BAR = "bar"
    LINE = "line"
    SCATTER = "scatter"

    @property
    def is_chart(self) -> bool:
        return self in (DataFormat.PIE, DataFormat.BAR, DataFormat.LINE, DataFormat.SCATTER)

    @classmethod
    def parse(cls, value: Union[str, "DataFormat", None]) -> "DataFormat":
        """Parse a format name; anything unrecognised becomes a markdown table."""
        if isinstance(value, DataFormat):
            return value
        if not isinstance(value, str):
            return cls.MARKDOWN_TABLE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.MARKDOWN_TABLE


CHART_TYPES = ("pie", "bar", "line", "scatter")
CHART_FIELDS = ("chart_type", "chart_data", "chart_title", "xKey", "yKey", "description", "analysis")


@dataclass
class ChartSpec:
    """Chart description produced by the model on the chart path."""

    chart_type: str
    chart_data: List[Any] = field(default_factory=list)
    chart_title: str = ""
    xKey: str = ""
    yKey: str = ""
    description: str = ""
    analysis: str = ""

    @classmethod
    def parse(cls, body: str) -> "ChartSpec":
        """
        Parse a model response into a chart spec.

        Raises:
            ParseError: The body is not a JSON object of the expected shape
        """
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ParseError("Chart response is not valid JSON", details=str(exc)) from exc
        if not isinstance(data, dict):
            raise ParseError("Chart response is not a JSON object")

        missing = [name for name in CHART_FIELDS if name not in data]
        if missing:
            raise ParseError("Chart response is missing fields", details=", ".join(missing))
        if data["chart_type"] not in CHART_TYPES:
            raise ParseError("Unknown chart type", details=str(data["chart_type"]))
        if not isinstance(data["chart_data"], list):
            raise ParseError("chart_data must be a list")

        return cls(**{name: data[name] for name in CHART_FIELDS})


@dataclass
class RenderRequest:
    """One render call: the raw result plus how to present it."""

    input_json: Any
    user_prompt: str
    system_prompt: str
    data_format: DataFormat = DataFormat.MARKDOWN_TABLE
    prefix_message: Optional[str] = None

    def input_text(self) -> str:
        if isinstance(self.input_json, str):
            return self.input_json
        return json.dumps(self.input_json, default=str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_prompt": self.user_prompt,
            "data_format": self.data_format.value,
            "prefix_message": self.prefix_message,
        }
