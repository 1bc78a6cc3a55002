"""PII masking for dispute descriptions, reasons and audit metadata."""

import re
import hashlib
from typing import Optional

from presidio_analyzer import AnalyzerEngine, RecognizerResult
from presidio_anonymizer import AnonymizerEngine
from presidio_anonymizer.entities import OperatorConfig


# Initialize Presidio engines (lazy loading)
_analyzer: Optional[AnalyzerEngine] = None
_anonymizer: Optional[AnonymizerEngine] = None


def _get_analyzer() -> AnalyzerEngine:
    """Get or create the Presidio analyzer engine."""
    global _analyzer
    if _analyzer is None:
        _analyzer = AnalyzerEngine()
    return _analyzer


def _get_anonymizer() -> AnonymizerEngine:
    """Get or create the Presidio anonymizer engine."""
    global _anonymizer
    if _anonymizer is None:
        _anonymizer = AnonymizerEngine()
    return _anonymizer


# Entity types filers tend to paste into dispute descriptions
PII_ENTITIES = [
    "CREDIT_CARD",
    "IBAN_CODE",
    "EMAIL_ADDRESS",
    "PHONE_NUMBER",
    "IP_ADDRESS",
    "PERSON",
    "LOCATION",
]

_OPERATORS = {
    "CREDIT_CARD": OperatorConfig("replace", {"new_value": "[REDACTED_CREDIT_CARD]"}),
    "IBAN_CODE": OperatorConfig("replace", {"new_value": "[REDACTED_IBAN]"}),
    "EMAIL_ADDRESS": OperatorConfig("replace", {"new_value": "[REDACTED_EMAIL]"}),
    "PHONE_NUMBER": OperatorConfig("replace", {"new_value": "[REDACTED_PHONE]"}),
    "IP_ADDRESS": OperatorConfig("replace", {"new_value": "[REDACTED_IP]"}),
    "PERSON": OperatorConfig("replace", {"new_value": "[REDACTED_PERSON]"}),
    "LOCATION": OperatorConfig("replace", {"new_value": "[REDACTED_LOCATION]"}),
    "DEFAULT": OperatorConfig("replace", {"new_value": "[REDACTED]"}),
}


def hash_user_id(user_id: str) -> str:
    """Hash a user ID for audit logging."""
    return hashlib.sha256(user_id.encode()).hexdigest()[:12]


def _mask_pii_regex(text: str) -> str:
    """Apply rule-based regex masking for common PII patterns.

    Masks:
    - Credit card numbers (16 digits with optional spaces/dashes)
    - Email addresses
    - Phone numbers, including +63 mobile numbers
    - Long digit runs that look like account numbers
    """
    text = re.sub(
        r'\b(?:\d{4}[-\s]?){3}\d{4}\b',
        '[REDACTED_CREDIT_CARD]',
        text
    )

    text = re.sub(
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b',
        '[REDACTED_EMAIL]',
        text
    )

    # Philippine mobile numbers (+63 9XX XXX XXXX or 09XX XXX XXXX)
    text = re.sub(
        r'(?:\+63[-\s]?|\b0)9\d{2}[-\s]?\d{3}[-\s]?\d{4}\b',
        '[REDACTED_PHONE]',
        text
    )

    text = re.sub(
        r'\b(?:\+1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b',
        '[REDACTED_PHONE]',
        text
    )

    text = re.sub(
        r'\b\d{10,17}\b',
        '[REDACTED_ACCOUNT]',
        text
    )

    return text


def _mask_pii_presidio(text: str) -> str:
    """Apply Microsoft Presidio-based PII detection and anonymization."""
    if not text:
        return text

    analyzer = _get_analyzer()
    anonymizer = _get_anonymizer()

    results: list[RecognizerResult] = analyzer.analyze(
        text=text,
        entities=PII_ENTITIES,
        language="en",
    )

    if not results:
        return text

    anonymized = anonymizer.anonymize(
        text=text,
        analyzer_results=results,
        operators=_OPERATORS,
    )

    return anonymized.text


def mask_pii(text: str, use_presidio: bool = True) -> str:
    """Mask PII patterns in text using a hybrid approach.

    First applies rule-based regex masking, then optionally uses
    Microsoft Presidio for NLP-based detection of names and places.

    Args:
        text: The text to redact PII from.
        use_presidio: Whether to apply Presidio detection after regex.

    Returns:
        Text with PII redacted.
    """
    if not text:
        return text

    masked_text = _mask_pii_regex(text)

    if use_presidio:
        masked_text = _mask_pii_presidio(masked_text)

    return masked_text


def redact_for_logging(data: dict) -> dict:
    """Redact sensitive fields from a dictionary for logging."""
    sensitive_fields = {
        "email", "phone", "address", "account_number",
        "password", "api_key", "token", "secret"
    }

    redacted = {}
    for key, value in data.items():
        if key.lower() in sensitive_fields:
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_for_logging(value)
        elif isinstance(value, list):
            redacted[key] = [
                redact_for_logging(v) if isinstance(v, dict) else v
                for v in value
            ]
        else:
            redacted[key] = value

    return redacted
