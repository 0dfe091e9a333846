"""Data models for Browser Node runs.

Input rows arrive as loosely typed dictionaries (the host's camelCase parameter
names are accepted through aliases). They are decoded once into the typed models
below before any browser work starts, so each branch of the executor only sees
the fields it declares.
"""
import base64
import mimetypes
import os
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from browser_node.constants import (
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_PROTOCOL_TIMEOUT_MS,
    DEFAULT_WAIT_UNTIL,
    PAPER_FORMATS,
    WAIT_UNTIL_EVENTS,
    HeadlessMode,
    Operation,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _name_value_pairs(value: Any, key: str) -> Any:
    """Flatten the host's ``{key: [{name, value}]}`` collections."""
    if isinstance(value, dict) and key in value:
        return value[key] or []
    return value


# --------------------------------------------------------------------------- #
# Binary payloads and results
# --------------------------------------------------------------------------- #


class BinaryData(_CamelModel):
    """A named binary attachment, base64 encoded."""
    data: str = Field(..., description="Base64 encoded content")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    file_name: Optional[str] = Field(None, alias="fileName")
    file_extension: Optional[str] = Field(None, alias="fileExtension")
    file_size: Optional[int] = Field(None, alias="fileSize")

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> "BinaryData":
        """Wrap raw bytes, deriving the extension from the name or media type."""
        if file_name:
            file_name = os.path.basename(file_name)
        if not mime_type and file_name:
            mime_type = mimetypes.guess_type(file_name)[0]
        extension = None
        if file_name and "." in file_name:
            extension = file_name.rsplit(".", 1)[1]
        elif mime_type:
            guessed = mimetypes.guess_extension(mime_type)
            extension = guessed.lstrip(".") if guessed else None
        return cls(
            data=base64.b64encode(content).decode("ascii"),
            mime_type=mime_type,
            file_name=file_name,
            file_extension=extension,
            file_size=len(content),
        )

    def content(self) -> bytes:
        """Decode the attachment back to bytes."""
        return base64.b64decode(self.data)


class Item(_CamelModel):
    """One input row with its position in the original input list."""
    index: int
    json_data: Dict[str, Any] = Field(default_factory=dict, alias="json")
    binary: Dict[str, BinaryData] = Field(default_factory=dict)
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Per-item node parameters")

    @classmethod
    def from_rows(cls, rows: Sequence[Dict[str, Any]]) -> List["Item"]:
        """Build items from raw rows; a row may carry ``json``/``binary``/``parameters``."""
        items = []
        for index, row in enumerate(rows):
            if "json" in row or "parameters" in row:
                items.append(cls(index=index, **{k: v for k, v in row.items() if k != "index"}))
            else:
                items.append(cls(index=index, json=row))
        return items


class ItemResult(_CamelModel):
    """A success or error payload tagged with the originating item index."""
    json_data: Dict[str, Any] = Field(default_factory=dict, alias="json")
    binary: Dict[str, BinaryData] = Field(default_factory=dict)
    paired_item: int = Field(..., alias="pairedItem")
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str, item_index: int, url: Optional[str] = None) -> "ItemResult":
        """Build the error payload used when failures are tolerated."""
        payload: Dict[str, Any] = {"error": message}
        if url:
            payload["url"] = url
        return cls(json=payload, paired_item=item_index, error=message)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the host's field names."""
        out: Dict[str, Any] = {"json": self.json_data, "pairedItem": {"item": self.paired_item}}
        if self.binary:
            out["binary"] = {
                key: value.model_dump(by_alias=True, exclude_none=True)
                for key, value in self.binary.items()
            }
        if self.error is not None:
            out["error"] = self.error
        return out


# --------------------------------------------------------------------------- #
# Per-item operation parameters (tagged union)
# --------------------------------------------------------------------------- #


class QueryParameter(_CamelModel):
    name: str
    value: str = ""


class _NavigationParams(_CamelModel):
    url: str = ""
    query_parameters: List[QueryParameter] = Field(default_factory=list, alias="queryParameters")

    @field_validator("query_parameters", mode="before")
    @classmethod
    def _flatten_query_parameters(cls, v):
        return _name_value_pairs(v, "parameters") or []


class PageContentParams(_NavigationParams):
    operation: Literal["getPageContent"] = "getPageContent"


class ScreenshotParams(_NavigationParams):
    operation: Literal["getScreenshot"] = "getScreenshot"
    data_property_name: str = Field("data", alias="dataPropertyName")
    image_type: Literal["png", "jpeg", "webp"] = Field("png", alias="imageType")
    full_page: bool = Field(False, alias="fullPage")
    quality: int = Field(100, ge=0, le=100)

    def screenshot_options(self) -> Dict[str, Any]:
        """Options for ``page.screenshot``; quality is only sent for lossy formats."""
        options: Dict[str, Any] = {"type": self.image_type, "full_page": self.full_page}
        if self.image_type != "png":
            options["quality"] = self.quality
        return options


class PdfMargin(_CamelModel):
    top: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None
    right: Optional[str] = None


class PdfParams(_NavigationParams):
    operation: Literal["getPDF"] = "getPDF"
    data_property_name: str = Field("data", alias="dataPropertyName")
    format: str = "Letter"
    height: str = ""
    width: str = ""
    margin: PdfMargin = Field(default_factory=PdfMargin)
    landscape: bool = False
    print_background: bool = Field(False, alias="printBackground")
    omit_background: bool = Field(False, alias="omitBackground")
    display_header_footer: bool = Field(False, alias="displayHeaderFooter")
    header_template: str = Field("", alias="headerTemplate")
    footer_template: str = Field("", alias="footerTemplate")
    prefer_css_page_size: bool = Field(False, alias="preferCSSPageSize")
    scale: float = Field(1.0, ge=0.1, le=2.0)
    page_ranges: str = Field("", alias="pageRanges")

    @model_validator(mode="after")
    def _validate_format(self):
        # the named size is only consulted when it decides the page size
        if self.prefer_css_page_size or (self.height and self.width):
            return self
        if self.format not in PAPER_FORMATS:
            raise ValueError(f"Unsupported paper format '{self.format}'. Use one of: {', '.join(PAPER_FORMATS)}")
        return self

    def page_size(self) -> Dict[str, Any]:
        """Explicit dimensions win over the named paper size."""
        if self.prefer_css_page_size:
            return {}
        if self.height and self.width:
            return {"height": self.height, "width": self.width}
        return {"format": self.format}

    def pdf_options(self) -> Dict[str, Any]:
        """Options for ``page.pdf``."""
        options: Dict[str, Any] = {
            "display_header_footer": self.display_header_footer,
            "print_background": self.print_background,
            "landscape": self.landscape,
            "prefer_css_page_size": self.prefer_css_page_size,
            "scale": self.scale,
            "margin": self.margin.model_dump(exclude_none=True),
        }
        if self.display_header_footer:
            options["header_template"] = self.header_template
            options["footer_template"] = self.footer_template
        if self.page_ranges:
            options["page_ranges"] = self.page_ranges
        options.update(self.page_size())
        return options


class ScriptParams(_CamelModel):
    operation: Literal["runCustomScript"] = "runCustomScript"
    script_code: str = Field("", alias="scriptCode")


OperationParams = Annotated[
    Union[PageContentParams, ScreenshotParams, PdfParams, ScriptParams],
    Field(discriminator="operation"),
]

_operation_params_adapter: TypeAdapter = TypeAdapter(OperationParams)


def decode_operation_params(operation: str, parameters: Dict[str, Any]):
    """Decode an item's raw parameters into the variant for ``operation``."""
    return _operation_params_adapter.validate_python({**parameters, "operation": operation})


# --------------------------------------------------------------------------- #
# Node options and the resolved run configuration
# --------------------------------------------------------------------------- #


class HumanTypingOptions(_CamelModel):
    keyboard_layout: str = Field("en", alias="keyboardLayout")
    typo_chance_percent: float = Field(15, ge=0, le=100, alias="typoChanceInPercent")
    keep_typo_chance_percent: float = Field(0, ge=0, le=100, alias="chanceToKeepATypoInPercent")
    minimum_delay_ms: int = Field(150, ge=0, alias="minimumDelayInMs")
    maximum_delay_ms: int = Field(650, ge=0, alias="maximumDelayInMs")
    backspace_minimum_delay_ms: int = Field(750, ge=0, alias="backspaceMinimumDelayInMs")
    backspace_maximum_delay_ms: int = Field(1500, ge=0, alias="backspaceMaximumDelayInMs")


def coerce_batch_size(value: Any) -> int:
    """Batch sizes that are not integers >= 1 become 1."""
    if isinstance(value, bool):
        return 1
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        return 1
    return value


class NodeOptions(_CamelModel):
    """Node-level options, read once per run."""
    batch_size: int = Field(1, alias="batchSize")
    headless: bool = True
    shell: bool = False
    executable_path: Optional[str] = Field(None, alias="executablePath")
    browser_ws_endpoint: str = Field("", alias="browserWSEndpoint")
    stealth: bool = False
    human_typing: bool = Field(False, alias="humanTyping")
    human_typing_options: HumanTypingOptions = Field(default_factory=HumanTypingOptions, alias="humanTypingOptions")
    launch_arguments: List[str] = Field(default_factory=list, alias="launchArguments")
    add_container_args: bool = Field(False, alias="addContainerArgs")
    proxy_server: Optional[str] = Field(None, alias="proxyServer")
    device: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    page_caching: bool = Field(True, alias="pageCaching")
    capture_downloads: bool = Field(False, alias="captureDownloads")
    protocol_timeout: Optional[int] = Field(None, alias="protocolTimeout")
    wait_until: str = Field(DEFAULT_WAIT_UNTIL, alias="waitUntil")
    timeout: Optional[int] = None
    file_name: Optional[str] = Field(None, alias="fileName")

    @field_validator("batch_size", mode="before")
    @classmethod
    def _coerce_batch_size(cls, v):
        return coerce_batch_size(v)

    @field_validator("launch_arguments", mode="before")
    @classmethod
    def _flatten_launch_arguments(cls, v):
        v = _name_value_pairs(v, "args") or []
        return [entry["arg"] if isinstance(entry, dict) else entry for entry in v]

    @field_validator("headers", mode="before")
    @classmethod
    def _flatten_headers(cls, v):
        v = _name_value_pairs(v, "parameter") or {}
        if isinstance(v, list):
            return {entry["name"]: entry.get("value", "") for entry in v}
        return v

    @field_validator("human_typing_options", mode="before")
    @classmethod
    def _default_human_typing_options(cls, v):
        return v or {}

    @field_validator("wait_until")
    @classmethod
    def _validate_wait_until(cls, v):
        # networkidle0/networkidle2 are accepted for compatibility
        if v.startswith("networkidle"):
            return "networkidle"
        if v not in WAIT_UNTIL_EVENTS:
            raise ValueError(f"waitUntil must be one of {WAIT_UNTIL_EVENTS}")
        return v

    @property
    def headless_mode(self) -> HeadlessMode:
        if not self.headless:
            return HeadlessMode.HEADFUL
        return HeadlessMode.SHELL if self.shell else HeadlessMode.HEADLESS


class RunConfiguration(BaseModel):
    """Immutable configuration resolved once per run."""
    model_config = ConfigDict(frozen=True)

    operation: str
    batch_size: int = 1
    headless_mode: HeadlessMode = HeadlessMode.HEADLESS
    launch_args: Tuple[str, ...] = ()
    executable_path: Optional[str] = None
    ws_endpoint: str = ""
    endpoint_source: str = "none"
    protocol_timeout: int = DEFAULT_PROTOCOL_TIMEOUT_MS
    stealth: bool = False
    human_typing: bool = False
    human_typing_options: HumanTypingOptions = Field(default_factory=HumanTypingOptions)
    device: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    page_caching: bool = True
    capture_downloads: bool = False
    wait_until: str = DEFAULT_WAIT_UNTIL
    navigation_timeout: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    file_name: Optional[str] = None
    continue_on_fail: bool = False

    @field_validator("batch_size", mode="before")
    @classmethod
    def _coerce_batch_size(cls, v):
        return coerce_batch_size(v)

    @property
    def is_remote(self) -> bool:
        return bool(self.ws_endpoint and self.ws_endpoint.strip())

    @property
    def operation_kind(self) -> Optional[Operation]:
        return Operation(self.operation) if Operation.is_valid(self.operation) else None
