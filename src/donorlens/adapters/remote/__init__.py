"""Public interface for the remote research and verification adapters."""

from __future__ import annotations

from .parser import (
    CorrectionReply,
    ParseFailure,
    ParseOutcome,
    ParseSuccess,
    clean_json,
    extract_json,
    parse_with_correction,
)
from .schema import LenientProspectRecord, ProspectRecord, lenient_record
from .source import HttpSourceAdapter, RemoteServiceError
from .verifier import HttpVerifier

__all__ = [
    "CorrectionReply",
    "HttpSourceAdapter",
    "HttpVerifier",
    "LenientProspectRecord",
    "ParseFailure",
    "ParseOutcome",
    "ParseSuccess",
    "ProspectRecord",
    "RemoteServiceError",
    "clean_json",
    "extract_json",
    "lenient_record",
    "parse_with_correction",
]
