"""Channel layer — request/response correlation between tiers."""

from jade_guard.channel.correlation import (
    ChannelEndpoint,
    Frame,
    FrameKind,
    channel_pair,
    new_request_id,
)

__all__ = ["ChannelEndpoint", "Frame", "FrameKind", "channel_pair", "new_request_id"]
