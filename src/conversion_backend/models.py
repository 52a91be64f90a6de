from __future__ import annotations

from datetime import date as Date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ConversionType(str, Enum):
    PDF_COMPRESS = "pdf_compress"
    PDF_MERGE = "pdf_merge"
    PDF_SPLIT = "pdf_split"
    PDF_TO_WORD = "pdf_to_word"
    PDF_TO_EXCEL = "pdf_to_excel"
    PDF_TO_POWERPOINT = "pdf_to_powerpoint"
    PDF_TO_IMAGE = "pdf_to_image"
    WORD_TO_PDF = "word_to_pdf"
    EXCEL_TO_PDF = "excel_to_pdf"
    POWERPOINT_TO_PDF = "powerpoint_to_pdf"
    IMAGE_TO_PDF = "image_to_pdf"
    IMAGE_COMPRESS = "image_compress"
    IMAGE_RESIZE = "image_resize"
    IMAGE_FORMAT = "image_format"
    VIDEO_COMPRESS = "video_compress"
    AUDIO_CONVERT = "audio_convert"
    TEXT_CASE = "text_case"
    TEXT_COUNT = "text_count"
    BASE64_ENCODE = "base64_encode"
    URL_ENCODE = "url_encode"
    HASH_GENERATE = "hash_generate"
    QR_GENERATE = "qr_generate"
    COLOR_CONVERT = "color_convert"
    UNIT_CONVERT = "unit_convert"
    CURRENCY_CONVERT = "currency_convert"


# Per-type input schemas. ``input_data`` is validated against the schema
# registered for its ``conversion_type`` before a job is created.


class TextCaseInput(BaseModel):
    text: str
    case_type: Literal["uppercase", "lowercase", "title", "sentence"]


class TextInput(BaseModel):
    text: str


class CodecInput(BaseModel):
    text: str
    operation: Literal["encode", "decode"] = "encode"


class HashInput(BaseModel):
    text: str
    hash_type: Literal["sha1", "sha256", "sha512"] = "sha256"


class QRInput(BaseModel):
    text: str = Field(..., min_length=1)
    size: int = Field(200, ge=50, le=1000)


class ColorInput(BaseModel):
    color: str
    from_format: Literal["hex", "rgb"]
    to_format: Literal["hex", "rgb"]


class UnitInput(BaseModel):
    value: float
    from_unit: str
    to_unit: str
    category: str


class CurrencyInput(BaseModel):
    amount: float = Field(..., ge=0)
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)


class PdfCompressInput(BaseModel):
    quality: Literal["low", "medium", "high"] = "medium"


class PdfMergeInput(BaseModel):
    files: List[str] = Field(..., min_length=2)
    file_names: Optional[List[str]] = None


class ConversionRequest(BaseModel):
    conversion_type: str = ""
    input_data: Optional[Dict[str, Any]] = None
    file_data: Optional[str] = None
    file_name: Optional[str] = None


class ConversionJob(BaseModel):
    id: str
    owner: str
    conversion_type: str
    status: JobStatus
    input_data: Optional[Dict[str, Any]] = None
    output_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class SubmitResponse(BaseModel):
    success: bool
    job_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    details: Optional[str] = None
    processing_time_ms: Optional[int] = None


class JobListResponse(BaseModel):
    success: bool = True
    jobs: List[ConversionJob]
    count: int


class UsageStat(BaseModel):
    date: Date
    total_conversions: int = 0
    successful_conversions: int = 0
    failed_conversions: int = 0
    total_processing_time_ms: int = 0
    conversion_types: Dict[str, int] = Field(default_factory=dict)


class UsageSummary(BaseModel):
    total_conversions: int = 0
    successful_conversions: int = 0
    failed_conversions: int = 0
    total_processing_time_ms: int = 0
    success_rate: float = 0.0
    avg_processing_time_ms: float = 0.0
    conversion_type_breakdown: Dict[str, int] = Field(default_factory=dict)


class UsageResponse(BaseModel):
    success: bool = True
    summary: UsageSummary
    daily_stats: List[UsageStat]


class AIOptions(BaseModel):
    targetLanguage: Optional[str] = None
    contentType: Optional[str] = None
    topic: Optional[str] = None


class AIConvertRequest(BaseModel):
    type: str
    content: str = ""
    options: AIOptions = Field(default_factory=AIOptions)


class AIConvertResponse(BaseModel):
    success: bool
    result: str
    type: str
    usage: Optional[Dict[str, Any]] = None


class APIKeyCreate(BaseModel):
    owner: str = Field(..., min_length=1)


class APIKeyInfo(BaseModel):
    id: str
    owner: str
    prefix: str
    is_active: bool
    created_at: datetime


class APIKeyCreated(BaseModel):
    api_key: str
    record: APIKeyInfo


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
