"""
Type-specific conversion handlers.

Each ``conversion_type`` maps to a :class:`Converter` holding its input schema
and handler. :func:`validate_request` checks a request against that entry
before any job exists; handlers then only see well-formed input.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type
from urllib.parse import quote, unquote

import pydantic
from pydantic import BaseModel

from .errors import ConversionFailure, ValidationError
from .exchange_rates import ExchangeRateClient
from .models import (
    CodecInput,
    ColorInput,
    ConversionRequest,
    ConversionType,
    CurrencyInput,
    HashInput,
    PdfCompressInput,
    PdfMergeInput,
    QRInput,
    TextCaseInput,
    TextInput,
    UnitInput,
)
from .pdf_tools import PDF_MIME, PdfTools
from .utils import decode_base64, encode_base64

logger = logging.getLogger(__name__)

QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"

# Factors relative to the category's base unit (meter, kilogram)
UNIT_FACTORS: Dict[str, Dict[str, float]] = {
    "length": {
        "meter": 1,
        "kilometer": 0.001,
        "centimeter": 100,
        "millimeter": 1000,
        "inch": 39.3701,
        "foot": 3.28084,
        "yard": 1.09361,
        "mile": 0.000621371,
    },
    "weight": {
        "kilogram": 1,
        "gram": 1000,
        "pound": 2.20462,
        "ounce": 35.274,
    },
}

_TO_CELSIUS: Dict[str, Callable[[float], float]] = {
    "celsius": lambda v: v,
    "fahrenheit": lambda v: (v - 32) * 5 / 9,
    "kelvin": lambda v: v - 273.15,
}

_FROM_CELSIUS: Dict[str, Callable[[float], float]] = {
    "celsius": lambda c: c,
    "fahrenheit": lambda c: c * 9 / 5 + 32,
    "kelvin": lambda c: c + 273.15,
}


@dataclass
class ConversionContext:
    pdf_tools: PdfTools
    exchange_rates: ExchangeRateClient


@dataclass
class ValidatedRequest:
    conversion_type: ConversionType
    input_data: Optional[Dict[str, Any]]
    params: Optional[BaseModel]
    file_bytes: Optional[bytes]
    file_name: Optional[str]


Handler = Callable[[ValidatedRequest, ConversionContext], Dict[str, Any]]


@dataclass(frozen=True)
class Converter:
    handler: Handler
    schema: Optional[Type[BaseModel]] = None
    requires_file: bool = False


# -- text -----------------------------------------------------------------


def _text_case(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: TextCaseInput = request.params  # type: ignore[assignment]
    text = params.text
    if params.case_type == "uppercase":
        return {"result": text.upper()}
    if params.case_type == "lowercase":
        return {"result": text.lower()}
    if params.case_type == "title":
        return {"result": re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)}
    return {"result": text[:1].upper() + text[1:].lower()}


def _text_count(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    text = request.params.text  # type: ignore[union-attr]
    return {
        "characters": len(text),
        "characters_no_spaces": len(re.sub(r"\s", "", text)),
        "words": len(text.split()),
        "sentences": len([s for s in re.split(r"[.!?]+", text) if s.strip()]),
        "paragraphs": len([p for p in re.split(r"\n\s*\n", text) if p.strip()]),
    }


def _base64_codec(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: CodecInput = request.params  # type: ignore[assignment]
    if params.operation == "encode":
        return {"result": base64.b64encode(params.text.encode("utf-8")).decode("ascii")}
    try:
        return {"result": base64.b64decode(params.text, validate=True).decode("utf-8")}
    except (binascii.Error, ValueError) as exc:
        raise ConversionFailure("Invalid base64 string") from exc


_MALFORMED_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _url_codec(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: CodecInput = request.params  # type: ignore[assignment]
    if params.operation == "encode":
        # Same unreserved set as encodeURIComponent
        return {"result": quote(params.text, safe="-_.!~*'()")}
    if _MALFORMED_PERCENT.search(params.text):
        raise ConversionFailure("Invalid URL encoded string")
    try:
        return {"result": unquote(params.text, errors="strict")}
    except UnicodeDecodeError as exc:
        raise ConversionFailure("Invalid URL encoded string") from exc


def _hash_generate(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: HashInput = request.params  # type: ignore[assignment]
    digest = hashlib.new(params.hash_type, params.text.encode("utf-8")).hexdigest()
    return {"result": digest}


def _qr_generate(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: QRInput = request.params  # type: ignore[assignment]
    url = f"{QR_SERVICE_URL}?size={params.size}x{params.size}&data={quote(params.text, safe='')}"
    return {"qr_code_url": url, "text": params.text, "size": params.size}


_RGB_PATTERN = re.compile(r"rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)")
_HEX_PATTERN = re.compile(r"#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})")


def _color_convert(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: ColorInput = request.params  # type: ignore[assignment]
    color = params.color.strip()
    if params.from_format == params.to_format:
        return {"result": color}

    if params.from_format == "hex":
        match = _HEX_PATTERN.fullmatch(color)
        if not match:
            raise ConversionFailure(f"Invalid hex color: {color}")
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
        return {"result": f"rgb({r}, {g}, {b})"}

    match = _RGB_PATTERN.fullmatch(color)
    if not match or any(int(channel) > 255 for channel in match.groups()):
        raise ConversionFailure(f"Invalid rgb color: {color}")
    r, g, b = (int(channel) for channel in match.groups())
    return {"result": f"#{r:02x}{g:02x}{b:02x}"}


# -- units and currency ---------------------------------------------------


def _unit_convert(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    params: UnitInput = request.params  # type: ignore[assignment]
    category = params.category.lower()
    from_unit = params.from_unit.lower()
    to_unit = params.to_unit.lower()

    if category == "temperature":
        if from_unit not in _TO_CELSIUS or to_unit not in _FROM_CELSIUS:
            raise ConversionFailure(f"Unsupported temperature units: {from_unit} -> {to_unit}")
        converted = _FROM_CELSIUS[to_unit](_TO_CELSIUS[from_unit](params.value))
    else:
        factors = UNIT_FACTORS.get(category)
        if factors is None:
            raise ConversionFailure(f"Unsupported unit category: {params.category}")
        if from_unit not in factors or to_unit not in factors:
            raise ConversionFailure(f"Unsupported {category} units: {from_unit} -> {to_unit}")
        converted = params.value / factors[from_unit] * factors[to_unit]

    return {
        "original_value": params.value,
        "from_unit": params.from_unit,
        "to_unit": params.to_unit,
        "converted_value": converted,
        "category": params.category,
    }


def _currency_convert(request: ValidatedRequest, context: ConversionContext) -> Dict[str, Any]:
    params: CurrencyInput = request.params  # type: ignore[assignment]
    return context.exchange_rates.convert(
        params.amount,
        params.from_currency.upper(),
        params.to_currency.upper(),
    )


# -- pdf ------------------------------------------------------------------


def _pdf_result(data: bytes, file_name: str) -> Dict[str, Any]:
    return {
        "output_base64": encode_base64(data),
        "mime": PDF_MIME,
        "file_name": file_name,
        "size_bytes": len(data),
    }


def _pdf_compress(request: ValidatedRequest, context: ConversionContext) -> Dict[str, Any]:
    params: PdfCompressInput = request.params  # type: ignore[assignment]
    data, name = context.pdf_tools.compress_pdf(
        request.file_bytes or b"", request.file_name or "input.pdf", params.quality
    )
    return _pdf_result(data, name)


def _pdf_merge(request: ValidatedRequest, context: ConversionContext) -> Dict[str, Any]:
    params: PdfMergeInput = request.params  # type: ignore[assignment]
    names = params.file_names or []
    files = []
    for index, encoded in enumerate(params.files):
        name = names[index] if index < len(names) else f"file-{index + 1}.pdf"
        files.append((decode_base64(encoded), name))
    data, name = context.pdf_tools.merge_pdfs(files)
    return _pdf_result(data, name)


def _office_to_pdf(request: ValidatedRequest, context: ConversionContext) -> Dict[str, Any]:
    data, name = context.pdf_tools.convert_to_pdf(request.file_bytes or b"", request.file_name or "document")
    return _pdf_result(data, name)


def _not_implemented(request: ValidatedRequest, _: ConversionContext) -> Dict[str, Any]:
    return {"message": f"{request.conversion_type.value} conversion not implemented yet"}


CONVERTERS: Dict[ConversionType, Converter] = {
    ConversionType.TEXT_CASE: Converter(_text_case, TextCaseInput),
    ConversionType.TEXT_COUNT: Converter(_text_count, TextInput),
    ConversionType.BASE64_ENCODE: Converter(_base64_codec, CodecInput),
    ConversionType.URL_ENCODE: Converter(_url_codec, CodecInput),
    ConversionType.HASH_GENERATE: Converter(_hash_generate, HashInput),
    ConversionType.QR_GENERATE: Converter(_qr_generate, QRInput),
    ConversionType.COLOR_CONVERT: Converter(_color_convert, ColorInput),
    ConversionType.UNIT_CONVERT: Converter(_unit_convert, UnitInput),
    ConversionType.CURRENCY_CONVERT: Converter(_currency_convert, CurrencyInput),
    ConversionType.PDF_COMPRESS: Converter(_pdf_compress, PdfCompressInput, requires_file=True),
    ConversionType.PDF_MERGE: Converter(_pdf_merge, PdfMergeInput),
    ConversionType.WORD_TO_PDF: Converter(_office_to_pdf, requires_file=True),
    ConversionType.EXCEL_TO_PDF: Converter(_office_to_pdf, requires_file=True),
    ConversionType.POWERPOINT_TO_PDF: Converter(_office_to_pdf, requires_file=True),
}

_FALLBACK = Converter(_not_implemented)


def get_converter(conversion_type: ConversionType) -> Converter:
    return CONVERTERS.get(conversion_type, _FALLBACK)


def _format_errors(exc: pydantic.ValidationError) -> list:
    return [
        f"input_data.{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
        for err in exc.errors()
    ]


def validate_request(request: ConversionRequest) -> ValidatedRequest:
    """
    Check a request against the schema registered for its conversion type.

    Raises:
        ValidationError: With a list of problems when the request is malformed
    """
    tag = (request.conversion_type or "").strip()
    if not tag:
        raise ValidationError(details=["conversion_type is required"])
    try:
        conversion_type = ConversionType(tag)
    except ValueError:
        raise ValidationError(details=[f"Unsupported conversion_type '{tag}'"]) from None

    if request.input_data is None and not request.file_data:
        raise ValidationError(details=["Either input_data or file_data is required"])

    converter = get_converter(conversion_type)
    if converter.requires_file and not request.file_data:
        raise ValidationError(details=[f"file_data is required for {conversion_type.value}"])

    params = None
    if converter.schema is not None:
        try:
            params = converter.schema.model_validate(request.input_data or {})
        except pydantic.ValidationError as exc:
            raise ValidationError(details=_format_errors(exc)) from exc

    file_bytes = None
    if request.file_data:
        try:
            file_bytes = decode_base64(request.file_data)
        except ValueError:
            raise ValidationError(details=["file_data is not valid base64"]) from None

    if conversion_type is ConversionType.PDF_MERGE:
        for index, encoded in enumerate(params.files):  # type: ignore[union-attr]
            try:
                decode_base64(encoded)
            except ValueError:
                raise ValidationError(details=[f"input_data.files.{index} is not valid base64"]) from None

    return ValidatedRequest(
        conversion_type=conversion_type,
        input_data=request.input_data,
        params=params,
        file_bytes=file_bytes,
        file_name=request.file_name,
    )


def run_conversion(request: ValidatedRequest, context: ConversionContext) -> Dict[str, Any]:
    """
    Run the handler for a validated request.

    Raises:
        ConversionFailure: When the conversion itself fails
    """
    converter = get_converter(request.conversion_type)
    logger.debug("Running %s converter", request.conversion_type.value)
    return converter.handler(request, context)
