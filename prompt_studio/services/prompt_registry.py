"""Prompt templates and inventory helpers for Prompt Studio."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


PROMPT_REGISTRY_VERSION = "2026-10-01"

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "pt": "Portuguese (Brazil)",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "af": "Afrikaans",
    "zh": "Chinese",
    "ja": "Japanese",
    "ar": "Arabic",
}
DEFAULT_LANGUAGE = "en"


BRANDING_REQUIREMENTS = """- **Negative Prompt:** List elements to avoid. **CRITICAL:** Include 'generic logos', 'inaccurate branding', 'stylized or altered logos', 'mismatched fonts'.
- **Style References:** Suggest visual styles for the video (e.g., 'cinematic, golden hour lighting', 'vibrant and poppy, high-energy', 'minimalist, clean aesthetic').
- **Branding, logos, and text (ABSOLUTE CRITICAL REQUIREMENT - HIGHEST PRIORITY):**
    1. **Identify Brand:** Identify the brand from the product image.
    2. **Internet Research Simulation:** Based on the brand identified, simulate a search for the official logo, brand colors (with hex codes if possible) and typography.
    3. **Meticulous Description with Weighted Elements:** Treat the logo as a graphical entity, not just text. The video AI must honor these weighted instructions:
        - **Logo Integrity (Weight: 2.0):** NO DEVIATIONS FROM REFERENCE. Describe shapes, symbols, curve, thickness and orientation. 1:1 replication of the official logo.
        - **Colors (Weight: 1.8):** Exact color matching, including gradients and shades inside the logo.
        - **Transparency (Weight: 1.5):** Describe transparent or negative-space elements precisely.
        - **Style (Weight: 1.5):** Replicate the logo's graphical style (flat, 3D, minimalist, illustrative).
        - **Typography (Weight: 1.7, if applicable):** ONLY if the logo includes text, use the official brand font. No substitutes.
    Any failure to follow the official branding is a failure of the entire task.
- **Colors:** All visible colors on the product, with specific descriptive names.
- **Materials, textures, and finish:** Physical textures (e.g., 'matte plastic body', 'brushed aluminum accents').
- **Design, shape, and form factor:** Physical shape and design language.
- **Subject details:** Exact match to reference. All proportions and placements must be replicated."""

PROMPT_INFLUENCER_PRODUCT = """You are an expert creative director specializing in short-form video content for social media, with a paramount focus on perfect brand representation.
Analyze the images provided.
The first image contains an influencer. The subsequent images show a single product from multiple angles and in different contexts. Synthesize information from ALL product images to build a complete, detailed understanding of it.

Based on your analysis, generate a detailed prompt for a video generation AI. The video should feature the influencer using or showcasing the product in a compelling way.

The output must be a single block of Markdown text, structured exactly as follows:

**Video Concept:** A brief, engaging concept for a 15-second vertical video.

**Scene Description:** Describe the scene, the influencer's actions, and how they interact with the product.

**Influencer Details:**
- **Appearance:** Key visual characteristics from the image (hair color, style, facial features), photographic and precise for an identical recreation.
- **Style:** Clothing and overall style.
- **Vibe:** Mood or personality as perceived from the image.

**Product Details (CRITICAL - BE EXTREMELY PRECISE):**
{branding}

**Shot List & Camera Angles:** Suggest 2-3 dynamic shots for the video.

**Lighting:** Suggest a lighting style that complements the mood.

**Dialogue/Speech:** Generate a short, natural-sounding, persuasive line of dialogue **to be spoken directly by the influencer shown in the video, not by a narrator**. The dialogue MUST be in **{language}**. It must sound authentic, briefly highlight the product's key benefits, and end by telling viewers the purchase link is in the description or a pinned comment."""

PROMPT_PRODUCT_AD = """You are an expert creative director specializing in short-form video content for social media, with a paramount focus on perfect brand representation.
Analyze the images provided, which show a single product from multiple angles and in different contexts. Synthesize information from ALL product images to build a complete, detailed understanding of it.

Based on your analysis, generate a detailed prompt for a video generation AI. The video should be a compelling 15-second vertical advertisement for the product.

The output must be a single block of Markdown text, structured exactly as follows:

**Video Concept:** A brief, engaging concept for the 15-second advertisement.

**Scene Description:** A series of dynamic scenes showcasing the product as the hero of the video.

**Product Details (CRITICAL - BE EXTREMELY PRECISE):**
{branding}

**Shot List & Camera Angles:** Suggest 3-4 dynamic shots for the video.

**Lighting:** Suggest a lighting style that highlights the product's features.

**Voice-over Script:** Generate a short, persuasive, professional voice-over script. The script MUST be in **{language}**. Open with a hook, communicate the key benefits, and close with a strong call to action."""

PROMPT_INFLUENCER_ONLY = """You are an expert creative director specializing in short-form video content for social media.
Analyze the image of the influencer provided. The user has also provided a description of the actions the influencer should perform.

**User-provided actions:** "{actions}"

Based on your analysis and the user's instructions, generate a detailed prompt for a video generation AI. The video should be a compelling 15-second vertical video focused entirely on the influencer.

The output must be a single block of Markdown text, structured exactly as follows:

**Video Concept:** A brief, engaging concept based on the user-provided actions.

**Scene Description:** Describe the scene, setting, and the influencer's actions in detail, expanding creatively on: "{actions}".

**Influencer Details:**
- **Appearance:** Key visual characteristics from the image, photographic and precise for an identical recreation.
- **Style:** Clothing and overall style from the image.
- **Vibe:** Mood or personality as perceived from the image and the requested actions.

**Shot List & Camera Angles:** Suggest 3-4 dynamic shots that capture the influencer's performance.

**Lighting:** Suggest a lighting style that complements the mood and actions.

**Dialogue/Speech:** Generate a short, natural-sounding line of dialogue **to be spoken directly by the influencer**. The dialogue MUST be in **{language}** and relevant to the actions described."""

PROMPT_CONSISTENCY_AUDIT = """You are a meticulous AI prompt auditor. Your task is to analyze the following prompt, which is intended for a video generation AI. Your sole focus is to determine if the prompt's descriptions will lead to a **visually consistent** output that is **identical** to the reference images it was based on.

Check for any ambiguity or creative language in the 'Influencer Details' and 'Product Details' sections that could cause the video AI to deviate from the source material. Pay special attention to the brand logo, colors, materials, design, and the influencer's appearance. The prompt must demand an exact, photorealistic match, not an 'inspired by' or 'similar to' version.

Respond with the specified JSON format indicating if the prompt is consistent and a brief reason. If inconsistent, point out the specific ambiguous part. A good prompt leaves no room for creative interpretation on critical features."""

PROMPT_STORYBOARD = """You are a storyboard artist for short promotional videos.
Turn the video idea below into a storyboard of 3 to 6 sequential scenes.

Return ONLY valid JSON, without markdown or extra text, in exactly this format:
{{
  "scenes": [
    {{
      "scene": 1,
      "description": "...",
      "imagePrompt": "..."
    }}
  ]
}}

Rules:
- "description" explains what happens in the scene in one or two sentences.
- "imagePrompt" is a standalone, highly visual prompt for an image model (subject, setting, composition, lighting, style).
- Number scenes from 1 in order.

Video idea:
{idea}"""


@dataclass(frozen=True)
class PromptRecord:
    prompt_id: str
    name: str
    template: str


PROMPT_RECORDS: List[PromptRecord] = [
    PromptRecord("influencer_product", "Influencer + product video prompt", PROMPT_INFLUENCER_PRODUCT),
    PromptRecord("product_ad", "Product ad video prompt", PROMPT_PRODUCT_AD),
    PromptRecord("influencer_only", "Influencer-only video prompt", PROMPT_INFLUENCER_ONLY),
    PromptRecord("consistency_audit", "Prompt consistency audit", PROMPT_CONSISTENCY_AUDIT),
    PromptRecord("storyboard", "Storyboard scenes (JSON)", PROMPT_STORYBOARD),
]


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(str(code or "").strip().lower(), LANGUAGE_NAMES[DEFAULT_LANGUAGE])


def get_prompt_template(prompt_id: str) -> str:
    safe_id = str(prompt_id or "").strip()
    for record in PROMPT_RECORDS:
        if record.prompt_id == safe_id:
            return record.template
    raise KeyError(f"Unknown prompt id: {safe_id}")


def render_prompt(prompt_id: str, language: str = DEFAULT_LANGUAGE, **fields: str) -> str:
    template = get_prompt_template(prompt_id)
    return template.format(branding=BRANDING_REQUIREMENTS, language=language_name(language), **fields)


def get_prompt_inventory() -> List[Dict[str, str]]:
    return [
        {
            "id": record.prompt_id,
            "name": record.name,
            "version": PROMPT_REGISTRY_VERSION,
            "template": record.template,
        }
        for record in PROMPT_RECORDS
    ]


def get_prompt_metadata() -> Dict[str, object]:
    return {
        "version": PROMPT_REGISTRY_VERSION,
        "count": len(PROMPT_RECORDS),
        "ids": [record.prompt_id for record in PROMPT_RECORDS],
        "languages": sorted(LANGUAGE_NAMES),
    }
