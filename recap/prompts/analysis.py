ANALYSIS_PROMPT = """You are looking at a grid of screenshots taken from one person's screen over a single work session. Each cell is labelled with the time it was captured, in reading order.

Based only on what is clearly visible:
- Identify the applications, documents and websites the person worked with
- Describe the main task or problem they were working on and how it progressed
- Note any concrete result, milestone or insight visible in the screenshots

Then write a short LinkedIn post in the first person about this work session. Keep it specific, friendly and under 200 words. Do not invent details that are not visible, do not mention screenshots, and do not include hashtags beyond three at the end.

Return only the text of the post."""

IMAGE_PROMPT = """Create a clean, modern header image for a LinkedIn post. Use a flat illustration style with a calm color palette, no text, no logos and no recognisable people. The image should capture the theme of the post below in a single clear visual metaphor."""


def build_image_prompt(template: str, post_text: str) -> str:
    """Combine the image template with the analysis text."""
    return f"{template}\n\nLinkedIn post content:\n{post_text}"
