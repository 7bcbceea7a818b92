#!/usr/bin/env python3
"""
Request/response boundary for running color analysis off the caller's thread.

Requests and responses are small tagged dataclasses. handle_request() never
raises: failures come back as ErrorResponse so a worker can't be taken down
by a bad buffer or an unknown request. ColorWorker runs requests one at a
time on a single background thread and hands each caller its own Future.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Union

from extract_colors import (
    DEFAULT_BUCKET_SIZE, DEFAULT_MAX_COLORS, DEFAULT_QUALITY, SKIN_SAMPLE_QUALITY,
    ALPHA_THRESHOLD, InvalidPixelBufferError, PixelBuffer,
    extract_colors, detect_skin_tones,
)
from harmony import analyze_color_harmony, generate_color_matches


logger = logging.getLogger(__name__)


class UnsupportedRequestError(Exception):
    """Raised for a request kind the worker doesn't know."""


# Error kinds carried on ErrorResponse
INVALID_INPUT = 'invalid_input'
UNSUPPORTED_OPERATION = 'unsupported_operation'
INTERNAL = 'internal'


# =============================================================================
# Requests
# =============================================================================

@dataclass
class ExtractColorsRequest:
    buffer: PixelBuffer
    max_colors: int = DEFAULT_MAX_COLORS
    quality: int = DEFAULT_QUALITY
    bucket_size: int = DEFAULT_BUCKET_SIZE
    alpha_threshold: int = ALPHA_THRESHOLD
    filter_extremes: bool = True
    kind: str = field(default='extractColors', init=False)


@dataclass
class AnalyzeHarmonyRequest:
    palette: list
    kind: str = field(default='analyzeColorHarmony', init=False)


@dataclass
class DetectSkinTonesRequest:
    buffer: PixelBuffer
    quality: int = SKIN_SAMPLE_QUALITY
    alpha_threshold: int = ALPHA_THRESHOLD
    kind: str = field(default='detectSkinTones', init=False)


@dataclass
class GenerateHarmonyRequest:
    color: object  # hex, rgb(...) string, color name or RGB triple
    harmony_type: str = 'complementary'
    kind: str = field(default='generateColorMatches', init=False)


@dataclass
class PingRequest:
    kind: str = field(default='ping', init=False)


Request = Union[ExtractColorsRequest, AnalyzeHarmonyRequest, DetectSkinTonesRequest,
                GenerateHarmonyRequest, PingRequest]


# =============================================================================
# Responses
# =============================================================================

@dataclass
class SuccessResponse:
    kind: str  # Request kind this answers
    data: object

    ok = True

    def to_dict(self) -> dict:
        return {'type': 'success', 'data': _to_plain(self.data)}


@dataclass
class ErrorResponse:
    kind: Optional[str]
    error: str
    error_kind: str = INTERNAL

    ok = False

    def to_dict(self) -> dict:
        return {'type': 'error', 'error': self.error, 'errorKind': self.error_kind}


Response = Union[SuccessResponse, ErrorResponse]


def _to_plain(value):
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


# =============================================================================
# Dispatch
# =============================================================================

def _dispatch(request) -> object:
    if isinstance(request, ExtractColorsRequest):
        return extract_colors(
            request.buffer,
            max_colors=request.max_colors,
            quality=request.quality,
            bucket_size=request.bucket_size,
            alpha_threshold=request.alpha_threshold,
            filter_extremes=request.filter_extremes,
        )
    if isinstance(request, AnalyzeHarmonyRequest):
        return analyze_color_harmony(request.palette)
    if isinstance(request, DetectSkinTonesRequest):
        return detect_skin_tones(request.buffer, quality=request.quality,
                                 alpha_threshold=request.alpha_threshold)
    if isinstance(request, GenerateHarmonyRequest):
        return generate_color_matches(request.color, request.harmony_type)
    if isinstance(request, PingRequest):
        return 'pong'
    raise UnsupportedRequestError(f"Unknown task type: {getattr(request, 'kind', type(request).__name__)}")


def handle_request(request) -> Response:
    """Run one request synchronously. Errors are returned, not raised."""
    kind = getattr(request, 'kind', None)
    try:
        return SuccessResponse(kind=kind, data=_dispatch(request))
    except UnsupportedRequestError as e:
        logger.warning("Rejected request: %s", e)
        return ErrorResponse(kind=kind, error=str(e), error_kind=UNSUPPORTED_OPERATION)
    except ValueError as e:
        # InvalidPixelBufferError is a ValueError
        logger.warning("Invalid %s request: %s", kind, e)
        return ErrorResponse(kind=kind, error=str(e), error_kind=INVALID_INPUT)
    except Exception as e:
        logger.exception("Color worker failed on %s request", kind)
        return ErrorResponse(kind=kind, error=str(e) or type(e).__name__, error_kind=INTERNAL)


def _buffer_from_message(message: dict) -> PixelBuffer:
    image = message.get('imageData')
    if not isinstance(image, dict):
        raise InvalidPixelBufferError("Message is missing 'imageData'")
    return PixelBuffer(data=image.get('data'), width=image.get('width'), height=image.get('height'))


def _options(message: dict) -> dict:
    options = message.get('options')
    if options is None:
        return {}
    if not isinstance(options, dict):
        raise ValueError(f"options must be an object, got {type(options).__name__}")
    return options


def _int_option(options: dict, name: str, default: int) -> int:
    """Read an integer option, accepting integral floats and numeric strings."""
    value = options.get(name, default)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"options.{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"options.{name} must be an integer, got {value!r}")


def _bool_option(options: dict, name: str, default: bool) -> bool:
    value = options.get(name, default)
    if not isinstance(value, bool):
        raise ValueError(f"options.{name} must be true or false, got {value!r}")
    return value


def request_from_message(message: dict):
    """
    Build a request from a plain message.

    Shapes:
        {'type': 'extractColors', 'imageData': {'data', 'width', 'height'},
         'options': {'maxColors', 'quality', 'bucketSize', 'alphaThreshold', 'filterExtremes'}}
        {'type': 'analyzeColorHarmony', 'options': {'colors': [...]}}
        {'type': 'detectSkinTones', 'imageData': {...}, 'options': {'quality'}}
        {'type': 'generateColorMatches', 'options': {'color', 'harmonyType'}}
        {'type': 'ping'}

    Raises:
        UnsupportedRequestError: Not a dict, or an unknown type
        ValueError: Missing or mistyped fields
    """
    if not isinstance(message, dict):
        raise UnsupportedRequestError(f"Message must be a dict, got {type(message).__name__}")
    kind = message.get('type')

    if kind == 'extractColors':
        options = _options(message)
        return ExtractColorsRequest(
            buffer=_buffer_from_message(message),
            max_colors=_int_option(options, 'maxColors', DEFAULT_MAX_COLORS),
            quality=_int_option(options, 'quality', DEFAULT_QUALITY),
            bucket_size=_int_option(options, 'bucketSize', DEFAULT_BUCKET_SIZE),
            alpha_threshold=_int_option(options, 'alphaThreshold', ALPHA_THRESHOLD),
            filter_extremes=_bool_option(options, 'filterExtremes', True),
        )
    if kind == 'analyzeColorHarmony':
        colors = _options(message).get('colors')
        if not isinstance(colors, (list, tuple)):
            raise ValueError(f"analyzeColorHarmony needs options.colors as a list, got {colors!r}")
        return AnalyzeHarmonyRequest(palette=list(colors))
    if kind == 'detectSkinTones':
        options = _options(message)
        return DetectSkinTonesRequest(
            buffer=_buffer_from_message(message),
            quality=_int_option(options, 'quality', SKIN_SAMPLE_QUALITY),
            alpha_threshold=_int_option(options, 'alphaThreshold', ALPHA_THRESHOLD),
        )
    if kind == 'generateColorMatches':
        options = _options(message)
        harmony_type = options.get('harmonyType', 'complementary')
        if not isinstance(harmony_type, str):
            raise ValueError(f"options.harmonyType must be a string, got {harmony_type!r}")
        return GenerateHarmonyRequest(color=options.get('color'), harmony_type=harmony_type)
    if kind == 'ping':
        return PingRequest()
    raise UnsupportedRequestError(f"Unknown task type: {kind}")


def handle_message(message: dict) -> dict:
    """Dict-in, dict-out version of handle_request for message-passing callers. Never raises."""
    try:
        request = request_from_message(message)
    except UnsupportedRequestError as e:
        logger.warning("Rejected message: %s", e)
        return ErrorResponse(kind=None, error=str(e), error_kind=UNSUPPORTED_OPERATION).to_dict()
    except ValueError as e:
        logger.warning("Invalid message: %s", e)
        return ErrorResponse(kind=None, error=str(e), error_kind=INVALID_INPUT).to_dict()
    except Exception as e:
        logger.exception("Could not read message")
        return ErrorResponse(kind=None, error=str(e) or type(e).__name__, error_kind=INTERNAL).to_dict()
    return handle_request(request).to_dict()


# =============================================================================
# Worker
# =============================================================================

class ColorWorker:
    """
    Runs color requests in the background, one at a time, in submission order.

    Each submit() returns its own Future, so overlapping callers never see each
    other's responses. There is no mid-computation cancellation; a caller that
    stops caring just drops its Future. Timeouts belong to the caller:

        with ColorWorker() as worker:
            response = worker.submit(ExtractColorsRequest(buffer)).result(timeout=10)

    Pass a ProcessPoolExecutor(max_workers=1) for process isolation.
    """

    def __init__(self, executor: Optional[Executor] = None):
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix='color-worker')
        self._closed = False

    def submit(self, request) -> Future:
        """Queue a request. The Future resolves to a SuccessResponse or ErrorResponse."""
        if self._closed:
            raise RuntimeError("ColorWorker is closed")
        return self._executor.submit(handle_request, request)

    def submit_message(self, message: dict) -> Future:
        """Queue a plain message. The Future resolves to a response dict."""
        if self._closed:
            raise RuntimeError("ColorWorker is closed")
        return self._executor.submit(handle_message, message)

    def call(self, request, timeout: Optional[float] = None) -> Response:
        """Submit and wait. Raises concurrent.futures.TimeoutError on timeout."""
        return self.submit(request).result(timeout=timeout)

    def close(self, wait: bool = True) -> None:
        self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> 'ColorWorker':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
