"""
Static detection tables and domain bounds.

Everything here is immutable and compiled once at import time. The
sanitizer, scanner and trading validators read these tables; nothing
writes to them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

# =============================================================================
# Sanitizer patterns (removed from untrusted text, applied in order)
# =============================================================================

SANITIZE_MARKUP = re.compile(r"<[^>]*>")
SANITIZE_PROTOCOLS = re.compile(r"javascript:|vbscript:|data:", re.IGNORECASE)
SANITIZE_EVENT_HANDLERS = re.compile(r"on\w+\s*=", re.IGNORECASE)
SANITIZE_SCRIPT_CALLS = re.compile(
    r"(?:expression|eval|setTimeout|setInterval)\s*\(", re.IGNORECASE
)
SANITIZE_CHAR_REFERENCES = re.compile(r"&#x?0*[0-9a-fA-F]+;?", re.IGNORECASE)

# =============================================================================
# XSS patterns (any match rejects)
# =============================================================================

XSS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<\s*/?\s*(?:script|iframe|object|embed|form)\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"vbscript\s*:", re.IGNORECASE),
    re.compile(r"data\s*:\s*text/html", re.IGNORECASE),
    # Inline event handler on any attribute of a tag, e.g. <img alt="(" onerror=...>
    # or <svg/onload=...>. Attribute values may hold any character.
    re.compile(
        r"<[a-z][\w:-]*"
        r"(?>[\s/]+[^\s/>=<\"']+(?:\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s/>\"']*))?)*?"
        r"(?:[\s/]+|(?<=[\"']))on[a-z]+\s*=(?!=)",
        re.IGNORECASE,
    ),
    # Numeric references for < > : j J *
    re.compile(
        r"&#(?:x0*(?:3c|3e|3a|6a|4a|2a)(?![0-9a-f])|0*(?:60|62|58|106|74|42)(?![0-9]));?",
        re.IGNORECASE,
    ),
)

# =============================================================================
# Obfuscation heuristic (counted, warns above a threshold)
# =============================================================================

OBFUSCATION_PATTERN = re.compile(
    r"0x[0-9a-fA-F]+|[A-Za-z0-9+/]{20,}={0,2}|\\u[0-9a-fA-F]{4}|\\x[0-9a-fA-F]{2}"
)
OBFUSCATION_THRESHOLD = 3

# =============================================================================
# Dangerous platform operations in generated MQL5 code (any match rejects)
# =============================================================================


class DangerousCategory(str, Enum):
    """Families of platform calls that generated code must not contain."""

    FILE_IO = "file_io"
    NETWORK = "network"
    PROCESS = "process"
    MEMORY = "memory"
    REGISTRY = "registry"
    GLOBAL_VARIABLES = "global_variables"
    ORDER_MANAGEMENT = "order_management"
    NATIVE_IMPORT = "native_import"


def _calls(*names: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(names) + r")\s*\(", re.IGNORECASE)


DANGEROUS_OPERATIONS: MappingProxyType[DangerousCategory, re.Pattern[str]] = MappingProxyType(
    {
        DangerousCategory.FILE_IO: _calls(
            "FileFind",
            "FileFindFirst",
            "FileFindNext",
            "FileOpen",
            "FileClose",
            "FileDelete",
            "FileCopy",
            "FileMove",
            "FileIsExist",
            "FileRead\\w*",
            "FileWrite\\w*",
            "FileFlush",
            "CreateFile",
            "DeleteFile",
            "ResourceCreate",
            "ResourceSave",
            "ResourceRead",
        ),
        DangerousCategory.NETWORK: _calls(
            "WebRequest",
            "SocketCreate",
            "SocketConnect",
            "SocketSend",
            "SocketRead",
            "SocketReceive",
            "InternetOpen\\w*",
            "InternetConnect",
            "HttpOpenRequest",
            "HttpSendRequest",
            "SendFTP",
            "SendMail",
            "SendNotification",
        ),
        DangerousCategory.PROCESS: _calls(
            "ShellExecute\\w*",
            "WinExec",
            "CreateProcess\\w*",
            "system",
            "exec",
            "popen",
        ),
        DangerousCategory.MEMORY: _calls(
            "memcpy",
            "memset",
            "malloc",
            "free",
            "GetMemory",
            "FreeMemory",
        ),
        DangerousCategory.REGISTRY: _calls(
            "RegOpenKey\\w*",
            "RegCreateKey\\w*",
            "RegSetValue\\w*",
            "RegGetValue\\w*",
            "RegDeleteKey\\w*",
            "RegDeleteValue",
            "RegQueryValue\\w*",
        ),
        DangerousCategory.GLOBAL_VARIABLES: _calls(
            "GlobalVariableSet\\w*",
            "GlobalVariableDel",
            "GlobalVariablesDeleteAll",
            "GlobalVariablesFlush",
            "GlobalVariableTemp",
        ),
        DangerousCategory.ORDER_MANAGEMENT: _calls(
            "OrderSend\\w*",
            "OrderClose\\w*",
            "OrderModify",
            "OrderDelete",
            "PositionOpen",
            "PositionClose\\w*",
            "PositionModify",
        ),
        DangerousCategory.NATIVE_IMPORT: re.compile(
            r"#import\s+[\"'][^\"']+\.(?:dll|exe|sys)[\"']"
            r"|\b(?:kernel32|user32|shell32|ws2_32|wininet|advapi32|winhttp)\.dll\b",
            re.IGNORECASE,
        ),
    }
)

# =============================================================================
# Suspicious keyword and prompt-injection heuristics (warn only)
# =============================================================================

SUSPICIOUS_KEYWORDS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "key",
        "token",
        "auth",
        "credential",
        "exploit",
        "hack",
        "crack",
        "bypass",
        "inject",
        "payload",
        "malware",
        "virus",
        "trojan",
        "backdoor",
        "rootkit",
    }
)
SUSPICIOUS_KEYWORD_THRESHOLD = 2

PROMPT_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"ignore\s+(?:all\s+)?previous\s+instructions", re.IGNORECASE),
    re.compile(r"disregard\s+the\s+above", re.IGNORECASE),
    re.compile(r"system\s*:\s*you\s+are", re.IGNORECASE),
    re.compile(r"\[(?:SYSTEM|ADMIN)\]", re.IGNORECASE),
    re.compile(r"\bjailbreak\b", re.IGNORECASE),
    re.compile(r"developer\s+mode", re.IGNORECASE),
)

MQL5_ENTRY_POINTS: tuple[str, ...] = ("OnTick", "OnInit", "OnStart", "OnDeinit", "OnCalculate")

# =============================================================================
# Domain bounds (closed intervals)
# =============================================================================


@dataclass(frozen=True)
class Bounds:
    """Closed numeric interval ``[minimum, maximum]``."""

    minimum: float
    maximum: float

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum


RISK_PERCENT = Bounds(0.01, 100)
STOP_LOSS_PIPS = Bounds(1, 1000)
TAKE_PROFIT_PIPS = Bounds(1, 1000)
MAGIC_NUMBER = Bounds(1, 999_999)
INITIAL_DEPOSIT = Bounds(100, 10_000_000)
BACKTEST_DAYS = Bounds(1, 365)
LEVERAGE = Bounds(1, 1000)
ROBOT_NAME_LENGTH = Bounds(3, 100)
API_KEY_LENGTH = Bounds(10, 500)
CUSTOM_INPUT_INT = Bounds(-2_147_483_648, 2_147_483_647)

DEFAULT_MAX_INPUT_LENGTH = 10_000
MAX_CODE_LENGTH_BEFORE_WARNING = 1_000_000

TIMEFRAMES: tuple[str, ...] = ("M1", "M5", "M15", "M30", "H1", "H4", "D1", "W1", "MN1")
CUSTOM_INPUT_TYPES: frozenset[str] = frozenset({"int", "double", "bool", "string"})

# EURUSD, EUR/USD, XAUUSD, BTC-USD, BTCUSDT ...
SYMBOL_PATTERN = re.compile(
    r"^(?:[A-Z]{6}|[A-Z]{3}/[A-Z]{3}|[A-Z]{3,6}[A-Z]{3}|[A-Z]{2,5}[-_][A-Z]{2,5}"
    r"|[A-Z]{3,6}USDT|[A-Z]{3,6}BUSD)$"
)
BLOCKED_SYMBOLS: frozenset[str] = frozenset({"TEST", "DEMO", "FAKE", "INVALID"})

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

API_KEY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[A-Za-z0-9_-]{20,}$"),
    re.compile(r"^[A-Za-z0-9]{32}$"),
    re.compile(r"^[A-Za-z0-9_-]{40}$"),
)
API_KEY_PLACEHOLDERS: tuple[str, ...] = (
    "your-api-key-here",
    "1234567890",
    "abcdefghijk",
    "test-key",
    "demo-key",
    "sample-key",
)

__all__ = [
    "API_KEY_LENGTH",
    "API_KEY_PATTERNS",
    "API_KEY_PLACEHOLDERS",
    "BACKTEST_DAYS",
    "BLOCKED_SYMBOLS",
    "Bounds",
    "CUSTOM_INPUT_INT",
    "CUSTOM_INPUT_TYPES",
    "DANGEROUS_OPERATIONS",
    "DEFAULT_MAX_INPUT_LENGTH",
    "DangerousCategory",
    "IDENTIFIER_PATTERN",
    "INITIAL_DEPOSIT",
    "LEVERAGE",
    "MAGIC_NUMBER",
    "MAX_CODE_LENGTH_BEFORE_WARNING",
    "MQL5_ENTRY_POINTS",
    "OBFUSCATION_PATTERN",
    "OBFUSCATION_THRESHOLD",
    "PROMPT_INJECTION_PATTERNS",
    "RISK_PERCENT",
    "ROBOT_NAME_LENGTH",
    "STOP_LOSS_PIPS",
    "SUSPICIOUS_KEYWORDS",
    "SUSPICIOUS_KEYWORD_THRESHOLD",
    "SYMBOL_PATTERN",
    "TAKE_PROFIT_PIPS",
    "TIMEFRAMES",
    "XSS_PATTERNS",
]
