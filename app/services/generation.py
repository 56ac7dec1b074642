"""Issue one provider call per requested variation and keep them in order."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from app.errors import GenerationFailed
from app.models import GeneratedImage, GenerationRequest, GenerationResult
from app.services.image_provider.base import ImageGenerator

logger = logging.getLogger(__name__)


def _generate_one(
    generator: ImageGenerator,
    request: GenerationRequest,
    index: int,
    request_id: Optional[str],
) -> GeneratedImage:
    started = time.perf_counter()
    images = generator.generate(request.single())
    if not images:
        raise GenerationFailed("The image provider returned no images.")
    logger.info(
        "[generate] rid=%s variation=%d done in %.2fs",
        request_id or "-",
        index,
        time.perf_counter() - started,
    )
    return images[0]


def generate_variations(
    generator: ImageGenerator,
    request: GenerationRequest,
    *,
    concurrency: int = 1,
    request_id: Optional[str] = None,
) -> GenerationResult:
    """Return exactly ``request.output_count`` images, index ``i`` from call ``i``.

    With ``concurrency > 1`` the calls run on a thread pool; results are still
    assembled by variation index, not completion order. The first failure
    propagates and no partial result is returned.
    """

    count = request.output_count
    workers = max(1, min(concurrency, count))
    indices = range(count)

    if workers == 1:
        images = [_generate_one(generator, request, i, request_id) for i in indices]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="variation") as pool:
            images = list(
                pool.map(lambda i: _generate_one(generator, request, i, request_id), indices)
            )

    return GenerationResult(images=tuple(images))


__all__ = ["generate_variations"]
