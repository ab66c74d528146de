"""Edge-triggered detection of cooling episodes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from datastore.repository import TelemetryRepository
from exceptions import StoreError
from models.records import CoolingEpisode, EngineState, TriggerType
from services.timestamps import duration_seconds, ensure_utc

logger = logging.getLogger(__name__)


class CoolingDetector:
    """Open a cooling episode on an inactive->active edge and close it on the reverse.

    Repeated signals in the same state are ignored. The episode row is
    updated by the id returned when it was inserted.
    """

    def __init__(self, state: EngineState, repository: TelemetryRepository) -> None:
        self.state = state
        self.repository = repository

    def observe(self, active: bool, trigger_type: TriggerType, time: datetime) -> Optional[CoolingEpisode]:
        time = ensure_utc(time)
        if active and self.state.open_cooling is None:
            return self._activate(trigger_type, time)
        if not active and self.state.open_cooling is not None:
            return self._deactivate(time)
        return None

    def _activate(self, trigger_type: TriggerType, time: datetime) -> CoolingEpisode:
        episode = CoolingEpisode(activated_at=time, trigger_type=trigger_type)
        try:
            episode.id = self.repository.insert_cooling(episode)
        except StoreError as exc:
            logger.error("Error storing cooling event: %s", exc, extra={"trigger_type": trigger_type.value})
        self.state.open_cooling = episode
        logger.info(
            "Cooling activated",
            extra={"episode_id": episode.id, "trigger_type": trigger_type.value},
        )
        return episode

    def _deactivate(self, time: datetime) -> Optional[CoolingEpisode]:
        episode = self.state.open_cooling
        if episode is None:
            return None

        episode.deactivated_at = max(time, episode.activated_at)
        episode.duration = duration_seconds(episode.activated_at, episode.deactivated_at)
        self.state.open_cooling = None

        if episode.id is None:
            logger.warning(
                "Cooling episode was never stored; deactivation not persisted",
                extra={"duration_s": episode.duration},
            )
        else:
            try:
                if not self.repository.close_cooling(episode):
                    logger.warning(
                        "No open cooling row matched on deactivation",
                        extra={"episode_id": episode.id},
                    )
            except StoreError as exc:
                logger.error(
                    "Error updating cooling event resolution: %s",
                    exc,
                    extra={"episode_id": episode.id},
                )

        logger.info(
            "Cooling deactivated",
            extra={"episode_id": episode.id, "duration_s": episode.duration},
        )
        return episode
