import threading
import time

import pytest

from app.errors import TransientGenerationError
from app.models import GeneratedImage, GenerationRequest
from app.services.generation import generate_variations


class OneImagePerCall:
    """Honours only count=1 and tags each image with its call number."""

    name = "one-per-call"

    def __init__(self, delays=None, fail_on=None):
        self.delays = delays or {}
        self.fail_on = fail_on
        self.counts = []
        self._lock = threading.Lock()
        self._calls = 0

    def generate(self, request):
        with self._lock:
            call = self._calls
            self._calls += 1
            self.counts.append(request.output_count)
        time.sleep(self.delays.get(call, 0))
        if call == self.fail_on:
            raise TransientGenerationError("busy")
        return [GeneratedImage(data=f"call-{call}".encode())]


def test_three_outputs_yield_three_ordered_results():
    generator = OneImagePerCall()

    result = generate_variations(generator, GenerationRequest(prompt="p", output_count=3))

    assert len(result) == 3
    assert [image.data for image in result.images] == [b"call-0", b"call-1", b"call-2"]
    assert generator.counts == [1, 1, 1]


def test_concurrent_results_keep_variation_order(monkeypatch):
    import app.services.generation as generation

    finished = []

    def fake_generate_one(generator, request, index, request_id):
        # later variations finish first
        time.sleep(0.05 * (3 - index))
        finished.append(index)
        return GeneratedImage(data=f"variation-{index}".encode())

    monkeypatch.setattr(generation, "_generate_one", fake_generate_one)

    result = generate_variations(
        OneImagePerCall(), GenerationRequest(prompt="p", output_count=4), concurrency=4
    )

    assert finished != [0, 1, 2, 3]
    assert [image.data for image in result.images] == [
        b"variation-0",
        b"variation-1",
        b"variation-2",
        b"variation-3",
    ]


def test_concurrent_calls_each_request_one_image():
    generator = OneImagePerCall(delays={0: 0.05})

    result = generate_variations(
        generator, GenerationRequest(prompt="p", output_count=3), concurrency=3
    )

    assert len(result) == 3
    assert generator.counts == [1, 1, 1]
    assert sorted(image.data for image in result.images) == [b"call-0", b"call-1", b"call-2"]


def test_failure_propagates_without_partial_result():
    generator = OneImagePerCall(fail_on=1)

    with pytest.raises(TransientGenerationError):
        generate_variations(generator, GenerationRequest(prompt="p", output_count=3))


def test_single_output_makes_single_call():
    generator = OneImagePerCall()

    result = generate_variations(generator, GenerationRequest(prompt="p"), concurrency=8)

    assert len(result) == 1
    assert generator.counts == [1]
