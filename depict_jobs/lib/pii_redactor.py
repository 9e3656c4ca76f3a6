"""PII redaction for log output.

Mail and notification jobs carry addresses, names and one-time tokens;
none of that may reach the log aggregator in plaintext.
"""

import re
from typing import Any, Optional


class PIIRedactor:
    """Redact PII and secrets from text before logging."""
    
    PATTERNS = {
        'email': r'\b[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w{2,}\b',
        'phone': r'(?<![\w+])\+\d{1,3}[\s/()-]?\d[\d\s/()-]{5,}\d\b',
        'iban': r'\b[A-Z]{2}\d{2}\s?(?:[\dA-Z]{4}\s?){3,5}[\dA-Z]{0,4}\b',
        'credit_card': r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b',
    }
    
    # token=..., "token": "...", password: ... (keeps the key, drops the value)
    SECRET_PATTERN = re.compile(
        r'''(?P<key>["']?\b(?:token|password|secret|api_key)\b["']?\s*[=:]\s*["']?)(?P<value>[^\s"'&,}]+)''',
        re.IGNORECASE,
    )
    
    @classmethod
    def redact(cls, text: Optional[str]) -> str:
        """
        Redact PII from text.
        
        Returns:
            Text with matches replaced by [TYPE_REDACTED]
        """
        if not text:
            return ""
        
        result = cls.SECRET_PATTERN.sub(r'\g<key>[SECRET_REDACTED]', text)
        for name, pattern in cls.PATTERNS.items():
            result = re.sub(pattern, f'[{name.upper()}_REDACTED]', result)
        return result
    
    @classmethod
    def redact_value(cls, value: Any) -> Any:
        """Redact strings, recursing into dicts and lists."""
        if isinstance(value, str):
            return cls.redact(value)
        if isinstance(value, dict):
            return {k: cls.redact_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [cls.redact_value(v) for v in value]
        return value
    
    @classmethod
    def contains_pii(cls, text: Optional[str]) -> bool:
        """Check if text contains any PII patterns."""
        if not text:
            return False
        if cls.SECRET_PATTERN.search(text):
            return True
        return any(re.search(pattern, text) for pattern in cls.PATTERNS.values())
