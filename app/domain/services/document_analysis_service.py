"""
Document Analysis Service - vision-model classification of driver documents.

Without OPENAI_API_KEY the service answers with a deterministic mock result,
so onboarding and the background analysis task never depend on the key.
"""
from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from openai import AsyncOpenAI, APIError, APITimeoutError

from app.core.circuit_breaker import CircuitBreaker, get_openai_circuit_breaker
from app.core.config import settings
from app.core.exceptions import AppException, DocumentAnalysisError, ServiceTimeoutError
from app.core.logging import get_logger

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_PROMPTS = {
    "cdl": (
        "Analyze this Commercial Driver License (CDL) document. Extract the following information:\n"
        "- CDL Number\n- Expiry Date\n- Driver Name\n- License Class\n- State of Issue\n\n"
        "Return the data in JSON format with confidence score (0-1) and validation status "
        "(keys: confidence, isValid, suggestions plus the extracted fields)."
    ),
    "dot_medical": (
        "Analyze this DOT Medical Certificate. Extract the following information:\n"
        "- Certificate Number\n- Expiry Date\n- Driver Name\n- Medical Examiner Name\n- Issue Date\n\n"
        "Return the data in JSON format with confidence score (0-1) and validation status "
        "(keys: confidence, isValid, suggestions plus the extracted fields)."
    ),
    "photo": (
        "Analyze this driver photo. Verify:\n"
        "- It's a clear, professional photo\n- Shows the driver's face clearly\n"
        "- Appropriate for identification purposes\n\n"
        "Return assessment in JSON format with confidence score (0-1) and validation status "
        "(keys: confidence, isValid, suggestions)."
    ),
}
_DEFAULT_PROMPT = "Analyze this document and extract relevant information."


@dataclass
class AnalysisResult:
    confidence: float
    extracted_data: dict[str, Any]
    is_valid: bool
    suggestions: list[str] = field(default_factory=list)


def get_document_prompt(document_type: str) -> str:
    return _PROMPTS.get(document_type, _DEFAULT_PROMPT)


def _as_suggestions(value: Any) -> list[str]:
    # models sometimes answer with one plain string instead of a list
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def parse_analysis_response(response: str) -> AnalysisResult:
    """
    Pull the first JSON object out of a model reply.

    Missing ``confidence`` defaults to 0.5 and missing ``isValid`` to False.
    A reply without JSON scores 0.3, a reply whose JSON does not parse scores 0.1.
    """
    match = _JSON_OBJECT_RE.search(response or "")
    if not match:
        return AnalysisResult(
            confidence=0.3,
            extracted_data={"raw_response": response},
            is_valid=False,
            suggestions=["Unable to parse AI response properly"],
        )

    try:
        parsed = json.loads(match.group(0))
        if not isinstance(parsed, dict):
            raise ValueError("top-level JSON is not an object")
        return AnalysisResult(
            confidence=float(parsed.get("confidence") or 0.5),
            extracted_data=parsed,
            is_valid=bool(parsed.get("isValid", False)),
            suggestions=_as_suggestions(parsed.get("suggestions")),
        )
    except (ValueError, TypeError):
        return AnalysisResult(
            confidence=0.1,
            extracted_data={"raw_response": response},
            is_valid=False,
            suggestions=["Error parsing AI response"],
        )


def mock_analysis(url: str, document_type: str) -> AnalysisResult:
    return AnalysisResult(
        confidence=0.9,
        extracted_data={"document_type": document_type, "mock_data": True, "url": url},
        is_valid=True,
        suggestions=["Mock analysis completed successfully"],
    )


def to_data_url(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


class DocumentAnalysisService:
    """Classifies driver documents (cdl, dot_medical, photo)"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        circuit_breaker: CircuitBreaker | None = None,
        logger=None,
    ):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_MODEL
        self._client = client
        self._circuit_breaker = circuit_breaker or get_openai_circuit_breaker()
        self._logger = logger or get_logger(__name__)
        self.max_tokens = 1000

    @property
    def is_mock(self) -> bool:
        return not self.api_key and self._client is None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key, timeout=settings.OPENAI_TIMEOUT_SECONDS
            )
        return self._client

    async def analyze(
        self,
        url: str,
        document_type: str,
        image_url: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Classify one document.

        Args:
            url: stored document URL (reported back in results and logs).
            document_type: cdl, dot_medical or photo.
            image_url: what the model should look at, e.g. a data: URL when the
                stored URL is not reachable from the internet. Defaults to ``url``.

        Raises:
            DocumentAnalysisError: the API call failed or returned nothing.
            ServiceTimeoutError: no reply within OPENAI_TIMEOUT_SECONDS.
            CircuitBreakerOpenError: too many recent failures.
        """
        if self.is_mock:
            self._logger.info(
                "Mock document analysis",
                extra_data={"document_type": document_type},
            )
            return mock_analysis(url, document_type)

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": get_document_prompt(document_type)},
                    {"type": "image_url", "image_url": {"url": image_url or url}},
                ],
            }
        ]

        async def _complete() -> str:
            try:
                response = await self._get_client().chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    max_tokens=self.max_tokens,
                )
            except APITimeoutError as e:
                raise ServiceTimeoutError("openai", settings.OPENAI_TIMEOUT_SECONDS) from e
            except APIError as e:
                raise DocumentAnalysisError(str(e), details={"document_type": document_type}) from e
            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise DocumentAnalysisError(
                    "No response from AI service", details={"document_type": document_type}
                )
            return content

        content = await self._circuit_breaker.execute(_complete)
        result = parse_analysis_response(content)
        self._logger.info(
            "Document analyzed",
            extra_data={
                "document_type": document_type,
                "confidence": result.confidence,
                "is_valid": result.is_valid,
            },
        )
        return result


def find_missing_driver_fields(driver) -> list[str]:
    """Completeness check run alongside the document analysis"""
    issues = []
    if not driver.full_name:
        issues.append("Full name is required")
    if not driver.phone_number:
        issues.append("Phone number is required")
    if not driver.driver_photo_url:
        issues.append("Driver photo is required")
    if not driver.cdl_photo_url or not driver.cdl_expiry_date:
        issues.append("CDL photo and expiry date are required")
    if not driver.dot_medical_photo_url or not driver.dot_medical_expiry_date:
        issues.append("DOT medical certificate photo and expiry date are required")
    return issues


# driver column -> document type understood by the prompts
DRIVER_DOCUMENTS: tuple[tuple[str, str], ...] = (
    ("driver_photo_url", "photo"),
    ("cdl_photo_url", "cdl"),
    ("dot_medical_photo_url", "dot_medical"),
)


async def analyze_driver_documents(
    driver,
    service: DocumentAnalysisService,
    storage=None,
) -> dict[str, AnalysisResult]:
    """
    Run the analysis for each stored document of a driver.

    With a storage the file bytes are sent inline as a data: URL, so documents
    served from a private address can still be analyzed. A failing document is
    reported as an invalid result with the error as its suggestion.
    """
    results: dict[str, AnalysisResult] = {}
    for column, document_type in DRIVER_DOCUMENTS:
        url = getattr(driver, column)
        if not url:
            continue
        try:
            image_url = None
            if storage is not None and not service.is_mock:
                content, content_type = await storage.read(url)
                image_url = to_data_url(content, content_type)
            results[document_type] = await service.analyze(url, document_type, image_url=image_url)
        except AppException as e:
            get_logger(__name__).warning(
                "Document analysis failed",
                extra_data={"driver_id": driver.id, "document_type": document_type, "error": str(e)},
            )
            results[document_type] = AnalysisResult(
                confidence=0.0,
                extracted_data={},
                is_valid=False,
                suggestions=[f"Analysis failed: {e}"],
            )
    return results
