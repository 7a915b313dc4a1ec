"""Catalog of container images known to work well for sandboxed tasks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from sandbox_batch.constants import DEFAULT_IMAGE


@dataclass(frozen=True, slots=True)
class SuggestedImage:
    image: str
    description: str
    reason: str


SUGGESTED_IMAGES: Final[tuple[SuggestedImage, ...]] = (
    SuggestedImage(
        image=DEFAULT_IMAGE,
        description="Node.js LTS version, slim variant.",
        reason="Lightweight and fast for JavaScript execution tasks.",
    ),
    SuggestedImage(
        image="mcr.microsoft.com/playwright:v1.53.2-noble",
        description="Playwright image for browser automation.",
        reason="Preconfigured for running Playwright scripts.",
    ),
    SuggestedImage(
        image="alfonsograziano/node-chartjs-canvas:latest",
        description="Chart.js image for chart generation and mermaid charts generation.",
        reason=(
            "Preconfigured for generating charts with chartjs-node-canvas and Mermaid. "
            "Minimal Mermaid example:\n"
            '    import fs from "fs";\n'
            '    import { run } from "@mermaid-js/mermaid-cli";\n'
            '    fs.writeFileSync("./files/diagram.mmd", "graph LR; A-->B;", "utf8");\n'
            '    await run("./files/diagram.mmd", "./files/diagram.svg");'
        ),
    ),
)


def render_suggested_images(images: tuple[SuggestedImage, ...] = SUGGESTED_IMAGES) -> str:
    """Render the catalog as a markdown bullet list."""

    return "\n".join(f"- **{item.image}**: {item.description} ({item.reason})" for item in images)


__all__ = ["SUGGESTED_IMAGES", "SuggestedImage", "render_suggested_images"]
