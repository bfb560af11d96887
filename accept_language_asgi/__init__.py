from .app import create_app
from .config import Settings
from .handler import AcceptLanguageHandler
from .headers import FALLBACK_TEXT, ResourceExhausted, ResponseChain, negotiate
from .table import (
    AcceptLanguageError,
    BuildError,
    BuildErrorReason,
    TranslationTable,
)

__all__ = [
    "AcceptLanguageError",
    "AcceptLanguageHandler",
    "BuildError",
    "BuildErrorReason",
    "FALLBACK_TEXT",
    "ResourceExhausted",
    "ResponseChain",
    "Settings",
    "TranslationTable",
    "create_app",
    "negotiate",
]
