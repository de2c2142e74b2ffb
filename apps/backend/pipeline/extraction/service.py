"""
Config-driven extraction with AI fallback and config learning.

Lookup order for a page:
  1. exact page-signature hash in the store
  2. pattern match across stored configs
  3. AI: generate a config, persist it under the page signature, and use its
     result; if generation is disabled or not good enough, extract directly
     with the job extraction agent

Once a config is learned, every structurally identical page resolves at
step 1 and no AI call is made.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.ai_service import AIServiceError
from core.html_cleaner import to_markdown
from pipeline.agents import JobExtractionAgent
from pipeline.completion import CompletionScorer, CompletionState, ScoringResult, evaluate
from pipeline.extraction import config_matcher, deterministic
from pipeline.extraction.config import ExtractionConfig, compute_match_hash
from pipeline.extraction.config_generator import ConfigGenerator
from pipeline.models import ExtractedJobData

logger = logging.getLogger(__name__)

METHOD_HASH = "config_hash"
METHOD_MATCH = "config_match"
METHOD_GENERATED = "config_generated"
METHOD_AI = "ai"


@dataclass
class ExtractionOutcome:
    data: ExtractedJobData
    completion_state: CompletionState
    method: str
    config_id: Optional[str] = None
    scoring: Optional[ScoringResult] = None

    @classmethod
    def of(cls, data: ExtractedJobData, method: str, config_id: Optional[str] = None) -> "ExtractionOutcome":
        return cls(
            data=data,
            completion_state=evaluate(data),
            method=method,
            config_id=config_id,
            scoring=CompletionScorer.score_extracted(data),
        )


class ConfigDrivenExtractor:
    """Resolves an extraction config for a page, learning one with AI when none fits."""

    def __init__(
        self,
        store,
        generator: Optional[ConfigGenerator],
        agent: JobExtractionAgent,
        learning_enabled: bool = True,
    ):
        self.store = store
        self.generator = generator
        self.agent = agent
        self.learning_enabled = learning_enabled and generator is not None

    def extract(self, html: str, url: str) -> ExtractionOutcome:
        """
        Raises:
            AIServiceError: when no stored config applies and the AI path fails
        """
        page_hash = config_matcher.signature_hash(html, url)

        config = self.store.find_extraction_config_by_hash(page_hash)
        if config is not None:
            logger.info(f"[extraction] Config hash hit for {url}: {config.name}")
            return self._apply(html, url, config, METHOD_HASH)

        config = config_matcher.find_match(html, url, self.store.get_all_extraction_configs())
        if config is not None:
            logger.info(f"[extraction] Config pattern match for {url}: {config.name}")
            return self._apply(html, url, config, METHOD_MATCH)

        if self.learning_enabled:
            outcome = self._learn(html, url)
            if outcome is not None:
                return outcome

        logger.info(f"[extraction] Falling back to AI extraction for {url}")
        data = self.agent.extract(to_markdown(html), url)
        return ExtractionOutcome.of(data, METHOD_AI)

    def _apply(self, html: str, url: str, config: ExtractionConfig, method: str) -> ExtractionOutcome:
        result = deterministic.extract(html, url, config)
        return ExtractionOutcome.of(result.data, method, config.id)

    def _learn(self, html: str, url: str) -> Optional[ExtractionOutcome]:
        try:
            generated = self.generator.generate(html, url)
        except AIServiceError as e:
            logger.warning(f"[extraction] Config generation failed for {url}: {e}")
            return None

        if not generated.is_successful:
            logger.info(
                f"[extraction] Generated config not good enough for {url}: "
                f"{generated.extraction_result.scoring_result.summary}"
            )
            return None

        # Keyed by the page signature so the next identical page is a hash hit
        signature = config_matcher.page_signature(html, url)
        learned = generated.config.model_copy(update={
            "match_patterns": signature,
            "match_hash": compute_match_hash(signature),
        })
        saved = self.store.upsert_extraction_config(learned)
        if saved is None:
            logger.warning(f"[extraction] Failed to persist learned config for {url}")
        else:
            logger.info(f"[extraction] Learned config '{saved.name}' after {generated.attempts} attempt(s)")

        data = generated.extraction_result.data
        return ExtractionOutcome.of(data, METHOD_GENERATED, saved.id if saved else None)
