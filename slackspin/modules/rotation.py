"""Cycle a fixed set of profile photos and statuses."""

from __future__ import annotations

from typing import Dict

from ..config import GlobalConfig
from ..selector import select_index
from .base import TickContext


class RotationModule:
    """Publish a random, non-repeating image together with the next status in order."""

    name = "rotation"

    def __init__(self, config: GlobalConfig) -> None:
        self.last_run_summary: Dict[str, object] = {}

    async def run(self, context: TickContext) -> Dict[str, object]:
        logger = context.logger
        rotation = context.state.rotation
        slack = context.slack

        if rotation.empty:
            logger.warning(
                "rotation.empty",
                message="No images or statuses available for cycling.",
                images=len(rotation.images),
                statuses=len(rotation.statuses),
            )
            self.last_run_summary = {"status": "noop", "reason": "empty_rotation"}
            return self.last_run_summary

        if slack is None:
            logger.error("rotation.no_slack_client")
            self.last_run_summary = {"status": "failed", "reason": "clients_unavailable"}
            return self.last_run_summary

        image_index = select_index(rotation.images, rotation.last_image_index, context.rng)
        image_url = rotation.images[image_index]
        status = rotation.current_status

        result = await slack.publish(image_url, status.text, status.emoji)
        rotation.advance(image_index)

        logger.info(
            "rotation.cycled",
            image_index=image_index,
            status_text=status.text,
            photo=result.image_updated,
            status=result.status_updated,
        )
        self.last_run_summary = {
            "status": "success" if result.image_updated and result.status_updated else "failed",
            "image_index": image_index,
            "image": image_url,
            "status_entry": status.model_dump(),
            "slack_updated": result.as_dict(),
        }
        return self.last_run_summary
