"""Mediator tier — DOM mutation heuristics.

Added elements are reported as snapshots (tag, src, inline style).  Two
patterns are flagged:

  - tracking pixel: ``IMG`` hidden by display/visibility/opacity or sized 0px
  - hidden iframe:  ``IFRAME`` hidden by display/visibility
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

TRACKING_PIXEL_REASON = "Potential tracking pixel detected"
HIDDEN_IFRAME_REASON = "Hidden iframe detected"


@dataclass(frozen=True)
class ElementSnapshot:
    tag: str
    src: str | None = None
    style: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ElementSnapshot":
        return cls(
            tag=str(data.get("tag", "")),
            src=data.get("src"),
            style={k: str(v) for k, v in (data.get("style") or {}).items()},
        )


@dataclass(frozen=True)
class Detection:
    reason: str
    details: dict[str, Any]


def _hidden(style: Mapping[str, str]) -> bool:
    return style.get("display") == "none" or style.get("visibility") == "hidden"


def _invisible_image(style: Mapping[str, str]) -> bool:
    return (
        _hidden(style)
        or style.get("opacity") == "0"
        or style.get("width") == "0px"
        or style.get("height") == "0px"
    )


def analyze_dom_changes(
    nodes: Iterable[ElementSnapshot | Mapping[str, Any]],
) -> list[Detection]:
    detections: list[Detection] = []
    for node in nodes:
        element = node if isinstance(node, ElementSnapshot) else ElementSnapshot.from_mapping(node)
        tag = element.tag.upper()
        style = element.style

        if tag == "IMG" and _invisible_image(style):
            detections.append(
                Detection(
                    reason=TRACKING_PIXEL_REASON,
                    details={
                        "element": "IMG",
                        "src": element.src,
                        "styles": {
                            key: style.get(key, "")
                            for key in ("display", "visibility", "opacity", "width", "height")
                        },
                    },
                )
            )
        elif tag == "IFRAME" and _hidden(style):
            detections.append(
                Detection(
                    reason=HIDDEN_IFRAME_REASON,
                    details={
                        "element": "IFRAME",
                        "src": element.src,
                        "styles": {key: style.get(key, "") for key in ("display", "visibility")},
                    },
                )
            )
    return detections
