"""Praxis AI request orchestration and resilience layer."""

from praxis.chain import ProviderChain
from praxis.completion import CompletionDispatcher, CompletionEvent, EntityVersions, generate_completion_details
from praxis.extractor import extract_json, parse_json
from praxis.orchestrator import Orchestrator, get_orchestrator
from praxis.types import ErrorClass, FeatureType, Request, Response, Session
from praxis.widgets import InsightPayload, normalize_widgets

__all__ = [
    "Orchestrator",
    "get_orchestrator",
    "ProviderChain",
    "Request",
    "Response",
    "Session",
    "FeatureType",
    "ErrorClass",
    "extract_json",
    "parse_json",
    "InsightPayload",
    "normalize_widgets",
    "CompletionEvent",
    "CompletionDispatcher",
    "EntityVersions",
    "generate_completion_details",
]
