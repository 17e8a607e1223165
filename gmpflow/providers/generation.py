"""
providers/generation.py - LLM-backed generation provider.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from gmpflow.core.enums import ProcessType
from gmpflow.core.models import Equipment, Order
from gmpflow.errors import ProviderUnavailable
from gmpflow.llm.exceptions import LLMError
from gmpflow.llm.protocol import LLMOptions, LLMProviderProtocol
from gmpflow.providers.prompts import GENERATION_SYSTEM_PROMPT, create_generation_prompt
from gmpflow.providers.schemas import PlanDraft, PlanDraftList
from gmpflow.scheduling.moisture import (
    BASE_STAGE_HOURS,
    DRYING_EXTENSION_FACTOR,
    MOISTURE_DELTA_THRESHOLD,
)
from gmpflow.validators.cleaning import DEFAULT_CLEANING_INTERVAL_HOURS

logger = logging.getLogger(__name__)

DRYING_RULE = (
    f"if detected moisture exceeds the standard by more than {MOISTURE_DELTA_THRESHOLD:g} "
    f"percentage points, drying takes {DRYING_EXTENSION_FACTOR:g}x the base duration"
)


class LLMPlanGenerator:
    """Asks a planner model for candidate drafts. Drafts are validated by the workflow."""

    def __init__(
        self,
        llm: LLMProviderProtocol,
        horizon_start: datetime,
        stage_hours: Optional[Mapping[ProcessType, float]] = None,
        cleaning_interval_hours: float = DEFAULT_CLEANING_INTERVAL_HOURS,
        name: str = "llm-generation",
        options: Optional[LLMOptions] = None,
    ):
        self.llm = llm
        self.horizon_start = horizon_start
        self.stage_hours = dict(stage_hours or BASE_STAGE_HOURS)
        self.cleaning_interval_hours = cleaning_interval_hours
        self.name = name
        self.options = options or LLMOptions(temperature=0.2, max_tokens=8192)

    async def propose(self, orders: Sequence[Order], equipment: Sequence[Equipment]) -> List[PlanDraft]:
        prompt = create_generation_prompt(
            orders,
            equipment,
            self.stage_hours,
            self.cleaning_interval_hours,
            self.horizon_start,
            DRYING_RULE,
        )
        try:
            result = await self.llm.complete_json(
                prompt,
                PlanDraftList,
                system_prompt=GENERATION_SYSTEM_PROMPT,
                options=self.options,
            )
        except LLMError as e:
            logger.warning(f"Plan generation call failed: {e}")
            raise ProviderUnavailable(self.name, str(e)) from e

        drafts = []
        for draft in result.plans:
            if not draft.strategy:
                draft = draft.model_copy(update={"strategy": "llm"})
            drafts.append(draft)
        logger.info(f"{self.name} proposed {len(drafts)} draft(s)")
        return drafts
