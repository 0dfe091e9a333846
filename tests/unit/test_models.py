"""Tests for item, option and parameter models."""
import pytest
from pydantic import ValidationError

from browser_node.constants import HeadlessMode
from browser_node.models import (
    BinaryData,
    Item,
    ItemResult,
    NodeOptions,
    PageContentParams,
    PdfParams,
    ScreenshotParams,
    ScriptParams,
    coerce_batch_size,
    decode_operation_params,
)
from browser_node.utils import get_logger

logger = get_logger("test.models")


class TestBatchSize:
    @pytest.mark.parametrize("value", [0, -3, 2.5, "3", None, True])
    def test_invalid_values_become_one(self, value):
        logger.info(f"Testing batch size coercion for {value!r}", emoji_key="test")
        assert coerce_batch_size(value) == 1

    @pytest.mark.parametrize("value,expected", [(1, 1), (4, 4), (4.0, 4)])
    def test_valid_values_kept(self, value, expected):
        assert coerce_batch_size(value) == expected

    def test_options_coerce(self):
        assert NodeOptions(batchSize=0).batch_size == 1
        assert NodeOptions(batchSize=3).batch_size == 3


class TestNodeOptions:
    def test_headless_modes(self):
        assert NodeOptions().headless_mode == HeadlessMode.HEADLESS
        assert NodeOptions(headless=True, shell=True).headless_mode == HeadlessMode.SHELL
        assert NodeOptions(headless=False, shell=True).headless_mode == HeadlessMode.HEADFUL

    def test_host_collections_flattened(self):
        options = NodeOptions.model_validate({
            "launchArguments": {"args": [{"arg": "--lang=de"}, {"arg": "--mute-audio"}]},
            "headers": {"parameter": [{"name": "X-Trace", "value": "1"}]},
        })
        assert options.launch_arguments == ["--lang=de", "--mute-audio"]
        assert options.headers == {"X-Trace": "1"}

    def test_networkidle_aliases(self):
        assert NodeOptions(waitUntil="networkidle2").wait_until == "networkidle"

    def test_invalid_wait_until(self):
        with pytest.raises(ValidationError):
            NodeOptions(waitUntil="whenever")


class TestOperationParams:
    def test_decode_dispatches_on_operation(self):
        logger.info("Testing parameter decoding", emoji_key="test")
        assert isinstance(decode_operation_params("getPageContent", {"url": "https://a.test"}), PageContentParams)
        assert isinstance(decode_operation_params("getScreenshot", {"url": "https://a.test"}), ScreenshotParams)
        assert isinstance(decode_operation_params("getPDF", {"url": "https://a.test"}), PdfParams)
        script = decode_operation_params("runCustomScript", {"scriptCode": "return []"})
        assert isinstance(script, ScriptParams)
        assert script.script_code == "return []"

    def test_query_parameters_flattened(self):
        params = decode_operation_params(
            "getPageContent",
            {"url": "https://a.test", "queryParameters": {"parameters": [{"name": "q", "value": "x"}]}},
        )
        assert [(p.name, p.value) for p in params.query_parameters] == [("q", "x")]

    def test_png_screenshot_omits_quality(self):
        options = ScreenshotParams(url="https://a.test", imageType="png", quality=50).screenshot_options()
        assert "quality" not in options
        assert options["type"] == "png"

    def test_jpeg_screenshot_sends_quality(self):
        options = ScreenshotParams(url="https://a.test", imageType="jpeg", quality=50, fullPage=True).screenshot_options()
        assert options == {"type": "jpeg", "full_page": True, "quality": 50}

    def test_quality_out_of_range(self):
        with pytest.raises(ValidationError):
            ScreenshotParams(url="https://a.test", quality=101)


class TestPdfPageSize:
    def test_explicit_dimensions_skip_format(self):
        logger.info("Testing PDF page size resolution", emoji_key="test")
        params = PdfParams(url="https://a.test", format="A4", width="8in", height="11in")
        options = params.pdf_options()
        assert options["width"] == "8in"
        assert options["height"] == "11in"
        assert "format" not in options

    @pytest.mark.parametrize("dims", [{"width": "8in"}, {"height": "11in"}, {}])
    def test_format_used_when_dimension_missing(self, dims):
        options = PdfParams(url="https://a.test", format="A4", **dims).pdf_options()
        assert options["format"] == "A4"
        assert "width" not in options or "height" not in options

    def test_prefer_css_page_size(self):
        assert PdfParams(url="https://a.test", preferCSSPageSize=True).page_size() == {}

    def test_templates_only_with_header_footer(self):
        hidden = PdfParams(url="https://a.test", headerTemplate="<b>h</b>").pdf_options()
        assert "header_template" not in hidden
        shown = PdfParams(url="https://a.test", displayHeaderFooter=True, headerTemplate="<b>h</b>").pdf_options()
        assert shown["header_template"] == "<b>h</b>"
        assert shown["footer_template"] == ""

    def test_unknown_format_rejected(self):
        with pytest.raises(ValidationError):
            PdfParams(url="https://a.test", format="B7")
        with pytest.raises(ValidationError):
            PdfParams(url="https://a.test", format="Custom", width="8.5in")

    def test_unused_format_not_checked(self):
        logger.info("Testing that an unused paper format is accepted", emoji_key="test")
        params = decode_operation_params(
            "getPDF", {"url": "https://a.test", "format": "Custom", "height": "11in", "width": "8.5in"}
        )
        options = params.pdf_options()
        assert options["width"] == "8.5in"
        assert options["height"] == "11in"
        assert "format" not in options
        css = PdfParams(url="https://a.test", format="Custom", preferCSSPageSize=True)
        assert "format" not in css.pdf_options()


class TestItemsAndResults:
    def test_from_rows(self):
        items = Item.from_rows([{"a": 1}, {"json": {"b": 2}, "parameters": {"url": "https://a.test"}}])
        assert [item.index for item in items] == [0, 1]
        assert items[0].json_data == {"a": 1}
        assert items[1].parameters == {"url": "https://a.test"}

    def test_failure_payload(self):
        result = ItemResult.failure("boom", 3, "https://a.test")
        assert result.is_error
        assert result.to_dict() == {
            "json": {"error": "boom", "url": "https://a.test"},
            "pairedItem": {"item": 3},
            "error": "boom",
        }

    def test_binary_from_bytes(self):
        binary = BinaryData.from_bytes(b"%PDF", "report.pdf")
        assert binary.mime_type == "application/pdf"
        assert binary.file_extension == "pdf"
        assert binary.file_size == 4
        assert binary.content() == b"%PDF"
