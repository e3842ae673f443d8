"""Outbound delivery of the daily reflection (email, Capacities, Supernotes)."""

from unearthed.services.delivery.channels import DeliveryChannel, mark_delivered
from unearthed.services.delivery.fanout import (
    CapacitiesDelivery,
    ChannelDelivery,
    EmailDelivery,
    FanoutSummary,
    SupernotesDelivery,
    build_channel_delivery,
    run_channel_fanout,
    save_daily_to_capacities,
)

__all__ = [
    "DeliveryChannel",
    "ChannelDelivery",
    "EmailDelivery",
    "CapacitiesDelivery",
    "SupernotesDelivery",
    "FanoutSummary",
    "build_channel_delivery",
    "mark_delivered",
    "run_channel_fanout",
    "save_daily_to_capacities",
]
