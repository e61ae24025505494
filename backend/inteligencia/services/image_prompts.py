"""
Image Prompt Extractor
Finds [IMAGE_PROMPT: ...] markers in generated blog content

Markers are swapped for placeholders so finished images can be embedded
back into the same spots once they exist.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ExtractedImagePrompt:
    """One image marker found in content"""
    id: str                      # Placeholder key, img_<n> in document order
    text: str                    # Prompt text without the marker syntax
    position: int                # Character offset of the marker
    line_number: int             # 1-indexed
    context: str                 # Surrounding text, markers collapsed
    suggested_size: str
    suggested_style: str
    importance: str              # primary | secondary | decorative
    section_title: Optional[str] = None

    @property
    def placeholder(self) -> str:
        return ImagePromptExtractor.placeholder_for(self.id)


@dataclass
class ImagePromptExtraction:
    """Extraction output: prompts in order plus content with placeholders"""
    prompts: List[ExtractedImagePrompt] = field(default_factory=list)
    content_with_placeholders: str = ""


class ImagePromptExtractor:
    """
    Extracts image prompts from blog content and re-embeds generated images.
    """

    PROMPT_PATTERN = re.compile(r"\[IMAGE_PROMPT:\s*([^\]]+)\]")
    PLACEHOLDER_PREFIX = "{{IMAGE_PLACEHOLDER_"
    PLACEHOLDER_PATTERN = re.compile(r"\{\{IMAGE_PLACEHOLDER_[^}]+\}\}")

    # Context window for snippets
    CONTEXT_WINDOW = 200

    # Markers this close to the top are treated as hero images
    HERO_OFFSET = 500

    SQUARE = "1024x1024"
    LANDSCAPE = "1792x1024"
    PORTRAIT = "1024x1792"

    PORTRAIT_HINTS = ("portrait", "vertical", "tall")
    LANDSCAPE_HINTS = ("landscape", "wide", "banner", "header")

    # Checked in order; first match wins
    STYLE_HINTS = [
        ("photorealistic", ("photo", "realistic", "real")),
        ("illustration", ("illustration", "cartoon", "drawing", "sketch")),
        ("diagram", ("diagram", "chart", "graph", "infographic")),
        ("artistic", ("artistic", "abstract", "creative")),
    ]
    DEFAULT_STYLE = "photorealistic"

    @classmethod
    def placeholder_for(cls, prompt_id: str) -> str:
        return f"{cls.PLACEHOLDER_PREFIX}{prompt_id}}}}}"

    def extract(self, content: Optional[str]) -> ImagePromptExtraction:
        """Extract every non-empty marker in document order"""
        if not content:
            return ImagePromptExtraction(content_with_placeholders=content or "")

        prompts: List[ExtractedImagePrompt] = []

        def replace(match: re.Match) -> str:
            text = match.group(1).strip()
            if not text:
                return match.group(0)
            position = match.start()
            prompt = ExtractedImagePrompt(
                id=f"img_{len(prompts)}",
                text=text,
                position=position,
                line_number=content.count("\n", 0, position) + 1,
                context=self._context(content, position),
                suggested_size=self.suggest_size(text, position, content),
                suggested_style=self.suggest_style(text),
                importance=self._importance(content, position),
                section_title=self._section_title(content, position),
            )
            prompts.append(prompt)
            return prompt.placeholder

        with_placeholders = self.PROMPT_PATTERN.sub(replace, content)
        return ImagePromptExtraction(prompts=prompts, content_with_placeholders=with_placeholders)

    def embed_images(self, content_with_placeholders: str, images: List[Dict[str, str]]) -> str:
        """
        Swap placeholders for markdown images.

        Each image is {"prompt_id", "url", "alt"?}. Placeholders with no image
        (failed generations) are removed.
        """
        content = content_with_placeholders
        for image in images:
            alt = image.get("alt") or "Generated image"
            content = content.replace(
                self.placeholder_for(image["prompt_id"]), f"![{alt}]({image['url']})", 1
            )
        return self.PLACEHOLDER_PATTERN.sub("", content)

    def suggest_size(self, prompt: str, position: int, content: str) -> str:
        lower = prompt.lower()
        if position < self.HERO_OFFSET:
            return self.LANDSCAPE
        if any(hint in lower for hint in self.PORTRAIT_HINTS):
            return self.PORTRAIT
        if any(hint in lower for hint in self.LANDSCAPE_HINTS):
            return self.LANDSCAPE

        # Image right under a section heading
        before = content[max(0, position - self.CONTEXT_WINDOW):position]
        if "##" in before and "###" not in before:
            return self.LANDSCAPE
        return self.SQUARE

    def suggest_style(self, prompt: str) -> str:
        lower = prompt.lower()
        for style, hints in self.STYLE_HINTS:
            if any(hint in lower for hint in hints):
                return style
        return self.DEFAULT_STYLE

    def _context(self, content: str, position: int) -> str:
        start = max(0, position - self.CONTEXT_WINDOW)
        end = min(len(content), position + self.CONTEXT_WINDOW)

        snippet = self.PROMPT_PATTERN.sub("[IMAGE]", content[start:end])
        snippet = " ".join(snippet.split())
        if start > 0:
            snippet = "..." + snippet
        if end < len(content):
            snippet = snippet + "..."
        return snippet

    def _importance(self, content: str, position: int) -> str:
        if position < self.HERO_OFFSET:
            return "primary"
        if content.count("\n", 0, position) + 1 > 50:
            return "decorative"
        return "secondary"

    @staticmethod
    def _section_title(content: str, position: int) -> Optional[str]:
        headings = re.findall(r"^#{1,3}\s+(.+)$", content[:position], re.MULTILINE)
        return headings[-1].strip() if headings else None


_extractor = ImagePromptExtractor()


def extract_image_prompts(content: Optional[str]) -> ImagePromptExtraction:
    return _extractor.extract(content)


def embed_images(content_with_placeholders: str, images: List[Dict[str, str]]) -> str:
    return _extractor.embed_images(content_with_placeholders, images)
