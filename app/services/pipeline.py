"""Per-request orchestration of the studio pipeline.

Every run walks the request state machine
``received -> validating -> (analyzing) -> prompt_built -> generating -> packaging -> done``
and ends in ``failed`` on the first error. Inputs are validated before a provider
is constructed, so bad input and missing credentials never reach the network.
Temporary copies of the inputs are removed on every exit path.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from app.config import Settings
from app.errors import AnalysisFailed, InvalidRequest, StudioError
from app.models import AnalysisResult, GenerationRequest, ImageAsset, RequestState, Stage
from app.models.state import new_request_id
from app.services.analysis import parse_analysis
from app.services.generation import generate_variations
from app.services.image_input import ImageInput, TempFiles, normalize
from app.services.image_provider import StudioProvider, get_provider
from app.services.packager import package_images
from app.services.prompt_builder import ad_prompt, studio_prompt, template_prompt
from app.templates import catalog

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Settings], StudioProvider]
PromptFactory = Callable[[Optional[AnalysisResult]], str]


@dataclass(frozen=True)
class _Plan:
    build_prompt: PromptFactory
    references: tuple[ImageAsset, ...] = ()
    analyze: bool = False
    output_count: int = 1
    result_mode: str = "inline"
    response_format: Literal["b64", "url"] = "b64"


class StudioPipeline:
    def __init__(self, settings: Settings, *, provider_factory: ProviderFactory = get_provider) -> None:
        self.settings = settings
        self.provider_factory = provider_factory

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------

    def run_studio(
        self,
        *,
        image: Optional[ImageInput],
        prompt: Optional[str] = None,
        skip_analysis: bool = False,
        num_outputs: int = 1,
        template_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> RequestState:
        """Studio shot of an uploaded product, or text-only generation when no image is given."""

        user_prompt = (prompt or "").strip() or None

        def plan() -> _Plan:
            if image is None and not user_prompt:
                raise InvalidRequest("Please provide a prompt when no image is uploaded.")
            asset = self._normalize(image) if image is not None else None
            style = catalog.get_template(template_id).prompt if template_id else None
            return _Plan(
                build_prompt=lambda analysis: studio_prompt(user_prompt, analysis, style_prompt=style),
                references=(asset,) if asset is not None else (),
                analyze=asset is not None and not skip_analysis,
                output_count=num_outputs,
                result_mode=self.settings.storage.studio_mode,
            )

        return self._execute(request_id, plan)

    def run_composition(
        self,
        kind: Literal["wireframe", "template"],
        *,
        product: Optional[ImageInput],
        reference_id: Optional[str] = None,
        reference_image: Optional[ImageInput] = None,
        prompt: Optional[str] = None,
        ad_copy: Optional[str] = None,
        skip_analysis: bool = True,
        num_outputs: int = 1,
        request_id: Optional[str] = None,
    ) -> RequestState:
        """Compose the product image with a catalog wireframe or studio template."""

        def plan() -> _Plan:
            if product is None:
                raise InvalidRequest("A product image is required.")
            if not reference_id and reference_image is None:
                raise InvalidRequest(f"A {kind} id or {kind} image is required.")

            product_asset = self._normalize(product)
            spec = catalog.get_entry(kind, reference_id) if reference_id else None
            if reference_image is not None:
                reference = self._normalize(reference_image)
            else:
                reference = catalog.load_asset(spec)
            static = spec.prompt if spec is not None else None

            if kind == "wireframe":
                build: PromptFactory = lambda analysis: ad_prompt(
                    static, ad_copy=ad_copy, user_request=prompt, analysis=analysis
                )
            else:
                build = lambda analysis: template_prompt(
                    static, user_request=prompt, analysis=analysis
                )
            return _Plan(
                build_prompt=build,
                references=(product_asset, reference),
                analyze=not skip_analysis,
                output_count=num_outputs,
                result_mode=self.settings.storage.composition_mode,
            )

        return self._execute(request_id, plan)

    def run_simple(
        self,
        *,
        prompt: str,
        num_outputs: int = 1,
        request_id: Optional[str] = None,
    ) -> RequestState:
        """Plain text-to-image; provider-hosted URLs are returned as they are."""

        text = (prompt or "").strip()

        def plan() -> _Plan:
            if not text:
                raise InvalidRequest("A prompt is required.")
            return _Plan(
                build_prompt=lambda _analysis: text,
                output_count=num_outputs,
                result_mode="inline",
                response_format="url",
            )

        return self._execute(request_id, plan)

    def write_prompt(
        self,
        *,
        product: Optional[ImageInput],
        reference: Optional[ImageInput],
        request_id: Optional[str] = None,
    ) -> str:
        """Ask the vision model for a prompt using ``product`` styled after ``reference``."""

        rid = request_id or new_request_id()
        if product is None or reference is None:
            raise InvalidRequest("Both a product image and a reference image are required.")
        product_asset = self._normalize(product)
        reference_asset = self._normalize(reference)

        provider = self.provider_factory(self.settings)
        started = time.perf_counter()
        try:
            text = provider.write_prompt(product_asset, reference_asset)
        finally:
            provider.close()
        logger.info(
            "[pipeline] rid=%s prompt written in %.2fs length=%d",
            rid,
            time.perf_counter() - started,
            len(text),
        )
        return text

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _normalize(self, raw: ImageInput) -> ImageAsset:
        upload = self.settings.upload
        return normalize(raw, max_bytes=upload.max_bytes, max_side=upload.max_side)

    def _enter(self, state: RequestState, stage: Stage, **changes) -> RequestState:
        state = state.advance(stage, **changes)
        logger.info("[pipeline] rid=%s stage=%s", state.request_id, stage.value)
        return state

    def _analyze(
        self, provider: StudioProvider, asset: ImageAsset, request_id: str
    ) -> Optional[AnalysisResult]:
        started = time.perf_counter()
        try:
            text = provider.analyze(asset, request_id=request_id)
        except AnalysisFailed as exc:
            logger.warning(
                "[pipeline] rid=%s analysis failed, continuing without it: %s", request_id, exc
            )
            return None
        analysis = parse_analysis(text, request_id=request_id)
        logger.info(
            "[pipeline] rid=%s analysis done in %.2fs degraded=%s attributes=%d",
            request_id,
            time.perf_counter() - started,
            analysis.degraded,
            len(analysis.present_attributes()),
        )
        return analysis

    def _execute(self, request_id: Optional[str], plan_factory: Callable[[], _Plan]) -> RequestState:
        started = time.perf_counter()
        state = RequestState(request_id=request_id or new_request_id())
        temp = TempFiles(self.settings.storage.temp_dir, state.request_id)
        provider: Optional[StudioProvider] = None
        try:
            state = self._enter(state, Stage.VALIDATING)
            plan = plan_factory()
            provider = self.provider_factory(self.settings)
            staged = temp.write_all(plan.references)

            analysis: Optional[AnalysisResult] = None
            if plan.analyze and staged:
                state = self._enter(state, Stage.ANALYZING, inputs=staged)
                analysis = self._analyze(provider, staged[0], state.request_id)

            prompt = plan.build_prompt(analysis)
            state = self._enter(
                state, Stage.PROMPT_BUILT, inputs=staged, analysis=analysis, prompt=prompt
            )

            request = GenerationRequest(
                prompt=prompt,
                reference_images=staged,
                output_count=plan.output_count,
                response_format=plan.response_format,
            )
            state = self._enter(state, Stage.GENERATING, generation=request)
            result = generate_variations(
                provider,
                request,
                concurrency=self.settings.generation_concurrency,
                request_id=state.request_id,
            )

            state = self._enter(state, Stage.PACKAGING, result=result)
            urls = package_images(result.images, self.settings.storage, plan.result_mode)
            state = self._enter(state, Stage.DONE, image_urls=tuple(urls))
            logger.info(
                "[pipeline] rid=%s completed outputs=%d in %.2fs",
                state.request_id,
                len(urls),
                time.perf_counter() - started,
            )
            return state
        except StudioError as exc:
            failed_at = state.stage.value
            state = state.fail(exc)
            logger.warning(
                "[pipeline] rid=%s failed at stage=%s code=%s: %s",
                state.request_id,
                failed_at,
                exc.code,
                exc,
            )
            raise
        finally:
            temp.cleanup()
            if provider is not None:
                provider.close()


__all__ = ["StudioPipeline"]
