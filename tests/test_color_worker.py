"""Tests for the request/response worker boundary."""
from __future__ import annotations

import threading
import time

import pytest

from color_worker import (
    INVALID_INPUT,
    INTERNAL,
    UNSUPPORTED_OPERATION,
    AnalyzeHarmonyRequest,
    ColorWorker,
    DetectSkinTonesRequest,
    ErrorResponse,
    ExtractColorsRequest,
    GenerateHarmonyRequest,
    PingRequest,
    SuccessResponse,
    handle_message,
    handle_request,
)
from extract_colors import PixelBuffer


def image_data(buffer: PixelBuffer) -> dict:
    return {'data': buffer.pixels().ravel().tolist(), 'width': buffer.width, 'height': buffer.height}


# ══════════════════════════════════════════════════════════════════════
# handle_request
# ══════════════════════════════════════════════════════════════════════

def test_extract_request_succeeds(two_color_buffer):
    response = handle_request(ExtractColorsRequest(two_color_buffer, quality=1))
    assert isinstance(response, SuccessResponse)
    assert response.ok
    assert response.kind == 'extractColors'
    assert [e.hex for e in response.data] == ['#0000ff', '#00ff00']


def test_empty_result_is_success(transparent_buffer):
    response = handle_request(ExtractColorsRequest(transparent_buffer))
    assert response.ok
    assert response.data == []


def test_malformed_buffer_is_invalid_input():
    response = handle_request(ExtractColorsRequest(PixelBuffer(data=[1, 2, 3], width=4, height=4)))
    assert isinstance(response, ErrorResponse)
    assert not response.ok
    assert response.error_kind == INVALID_INPUT
    assert 'expected 64' in response.error


def test_unknown_request_is_unsupported():
    response = handle_request(object())
    assert response.error_kind == UNSUPPORTED_OPERATION
    assert 'Unknown task type' in response.error


def test_unexpected_failure_is_internal_error(monkeypatch, two_color_buffer):
    def boom(*args, **kwargs):
        raise RuntimeError("kaput")

    monkeypatch.setattr('color_worker.extract_colors', boom)
    response = handle_request(ExtractColorsRequest(two_color_buffer))
    assert response.error_kind == INTERNAL
    assert response.error == 'kaput'


def test_harmony_and_skin_requests(skin_buffer):
    harmony = handle_request(AnalyzeHarmonyRequest([(255, 0, 0), (0, 255, 255)]))
    assert harmony.data.harmony == 'complementary'

    skin = handle_request(DetectSkinTonesRequest(skin_buffer))
    assert skin.data.has_skin_tones is True


def test_generate_request():
    response = handle_request(GenerateHarmonyRequest('#ff0000', 'tetradic'))
    assert response.ok
    assert response.data.harmony_type == 'tetradic'

    bad = handle_request(GenerateHarmonyRequest('not a color'))
    assert bad.error_kind == INVALID_INPUT


def test_ping():
    assert handle_request(PingRequest()).data == 'pong'


# ══════════════════════════════════════════════════════════════════════
# handle_message
# ══════════════════════════════════════════════════════════════════════

def test_extract_message(two_color_buffer):
    reply = handle_message({
        'type': 'extractColors',
        'imageData': image_data(two_color_buffer),
        'options': {'maxColors': 1, 'quality': 1},
    })
    assert reply['type'] == 'success'
    assert reply['data'] == [{
        'rgb': [0, 0, 255], 'hex': '#0000ff', 'count': 50, 'percentage': 100.0, 'name': 'bright blue',
    }]


def test_harmony_message_round_trips_extracted_palette(two_color_buffer):
    palette = handle_message({
        'type': 'extractColors',
        'imageData': image_data(two_color_buffer),
        'options': {'quality': 1},
    })['data']
    reply = handle_message({'type': 'analyzeColorHarmony', 'options': {'colors': palette}})
    assert reply == {
        'type': 'success',
        'data': {
            'harmony': 'custom',
            'score': 70,
            'suggestions': ['Consider adding complementary colors for more visual impact.'],
        },
    }


def test_skin_message(skin_buffer):
    reply = handle_message({'type': 'detectSkinTones', 'imageData': image_data(skin_buffer)})
    assert reply['data'] == {'has_skin_tones': True, 'percentage': 100.0}


def test_generate_message():
    reply = handle_message({'type': 'generateColorMatches', 'options': {'color': 'coral', 'harmonyType': 'analogous'}})
    assert reply['type'] == 'success'
    assert reply['data']['harmony_type'] == 'analogous'
    assert [m['label'] for m in reply['data']['matches']][:2] == ['Analogous +30°', 'Analogous -30°']


@pytest.mark.parametrize("message,error_kind", [
    ({'type': 'sharpen'}, UNSUPPORTED_OPERATION),
    ({}, UNSUPPORTED_OPERATION),
    ('extractColors', UNSUPPORTED_OPERATION),
    ({'type': 'extractColors'}, INVALID_INPUT),
    ({'type': 'analyzeColorHarmony', 'options': {}}, INVALID_INPUT),
    ({'type': 'extractColors', 'imageData': {'data': [0, 0, 0], 'width': 1, 'height': 1}}, INVALID_INPUT),
    ({'type': 'extractColors', 'imageData': {'data': [0, 0, 0, 255]}}, INVALID_INPUT),
    ({'type': 'extractColors', 'options': [1, 2],
      'imageData': {'data': [0, 0, 255, 255], 'width': 1, 'height': 1}}, INVALID_INPUT),
    ({'type': 'analyzeColorHarmony', 'options': {'colors': 5}}, INVALID_INPUT),
    ({'type': 'analyzeColorHarmony', 'options': 'colors'}, INVALID_INPUT),
    ({'type': 'extractColors', 'options': {'maxColors': 'five'},
      'imageData': {'data': [0, 0, 255, 255], 'width': 1, 'height': 1}}, INVALID_INPUT),
    ({'type': 'extractColors', 'options': {'quality': 2.5},
      'imageData': {'data': [0, 0, 255, 255], 'width': 1, 'height': 1}}, INVALID_INPUT),
    ({'type': 'detectSkinTones', 'options': {'quality': None},
      'imageData': {'data': [0, 0, 255, 255], 'width': 1, 'height': 1}}, INVALID_INPUT),
    ({'type': 'generateColorMatches', 'options': {'color': 'red', 'harmonyType': 3}}, INVALID_INPUT),
])
def test_bad_messages_become_error_replies(message, error_kind):
    reply = handle_message(message)
    assert reply['type'] == 'error'
    assert reply['errorKind'] == error_kind
    assert reply['error']


def test_numeric_options_are_coerced(two_color_buffer):
    reply = handle_message({
        'type': 'extractColors',
        'imageData': image_data(two_color_buffer),
        'options': {'maxColors': '1', 'quality': 1.0},
    })
    assert reply['type'] == 'success'
    assert [e['hex'] for e in reply['data']] == ['#0000ff']


def test_worker_future_resolves_bad_message_to_error():
    with ColorWorker() as worker:
        reply = worker.submit_message({'type': 'analyzeColorHarmony', 'options': {'colors': 5}}).result(timeout=10)
    assert reply['type'] == 'error'
    assert reply['errorKind'] == INVALID_INPUT


# ══════════════════════════════════════════════════════════════════════
# ColorWorker
# ══════════════════════════════════════════════════════════════════════

def test_worker_resolves_each_future_with_its_own_response(two_color_buffer, skin_buffer):
    with ColorWorker() as worker:
        futures = [
            worker.submit(ExtractColorsRequest(two_color_buffer, quality=1)),
            worker.submit(DetectSkinTonesRequest(skin_buffer)),
            worker.submit(PingRequest()),
            worker.submit(object()),
        ]
        responses = [f.result(timeout=10) for f in futures]

    assert [r.kind for r in responses] == ['extractColors', 'detectSkinTones', 'ping', None]
    assert len(responses[0].data) == 2
    assert responses[1].data.has_skin_tones is True
    assert responses[2].data == 'pong'
    assert responses[3].error_kind == UNSUPPORTED_OPERATION


def test_worker_runs_one_request_at_a_time(monkeypatch):
    active = []
    overlap = []
    lock = threading.Lock()

    def slow_ping(request):
        with lock:
            active.append(request)
            overlap.append(len(active))
        time.sleep(0.01)
        with lock:
            active.remove(request)
        return 'pong'

    monkeypatch.setattr('color_worker._dispatch', slow_ping)
    with ColorWorker() as worker:
        futures = [worker.submit(PingRequest()) for _ in range(5)]
        assert all(f.result(timeout=10).ok for f in futures)
    assert max(overlap) == 1


def test_worker_messages_and_call():
    with ColorWorker() as worker:
        assert worker.submit_message({'type': 'ping'}).result(timeout=10) == {'type': 'success', 'data': 'pong'}
        assert worker.call(PingRequest(), timeout=10).data == 'pong'


def test_closed_worker_rejects_requests():
    worker = ColorWorker()
    worker.close()
    with pytest.raises(RuntimeError):
        worker.submit(PingRequest())
