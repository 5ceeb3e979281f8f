# =============================================================================
# core/services/ai_service.py - OpenAI Summarization
# =============================================================================
# Wraps the OpenAI chat completions API for summaries and titles, and reads
# the text of a web page when a summary is requested for a URL.
#
# Usage:
#   ai = AIService()
#   text = ai.generate_summary(content, SummaryStyle.TOP3, Language.EN)
# =============================================================================

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from openai import OpenAI, OpenAIError

from app.config import settings
from core.models.summary import SummaryStyle
from core.models.user import Language
from lib.security import UnsafeURLError, validate_external_url

logger = logging.getLogger(__name__)

USER_AGENT = "NoteFlow/1.0"
URL_FETCH_TIMEOUT_SECONDS = 10.0
# Roughly 30k tokens; longer pages are cut before being sent to the model
MAX_INPUT_CHARS = 120_000

TWEET_MAX_TOKENS = 100
DEFAULT_MAX_TOKENS = 1000
TITLE_MAX_TOKENS = 30

_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Prompts
# =============================================================================

PROMPTS: dict[SummaryStyle, dict[Language, str]] = {
    SummaryStyle.SHORT: {
        Language.FR: "Résume ce texte en 2-3 phrases courtes et claires.",
        Language.EN: "Summarize this text in 2-3 short and clear sentences.",
    },
    SummaryStyle.TWEET: {
        Language.FR: "Résume ce texte en un tweet de maximum 280 caractères.",
        Language.EN: "Summarize this text in a tweet of maximum 280 characters.",
    },
    SummaryStyle.THREAD: {
        Language.FR: "Crée un thread Twitter (5-7 tweets numérotés) résumant les points clés de ce texte.",
        Language.EN: "Create a Twitter thread (5-7 numbered tweets) summarizing the key points of this text.",
    },
    SummaryStyle.BULLET_POINT: {
        Language.FR: "Liste les points clés de ce texte sous forme de bullet points (5-8 points avec •).",
        Language.EN: "List the key points of this text as bullet points (5-8 points with •).",
    },
    SummaryStyle.TOP3: {
        Language.FR: "Extrais les 3 points les plus importants de ce texte (numérotés 1, 2, 3).",
        Language.EN: "Extract the 3 most important points from this text (numbered 1, 2, 3).",
    },
    SummaryStyle.MAIN_POINTS: {
        Language.FR: "Résume les points principaux de ce texte de manière détaillée et structurée.",
        Language.EN: "Summarize the main points of this text in a detailed and structured way.",
    },
    SummaryStyle.EDUCATIONAL: {
        Language.FR: (
            "Explique ce texte comme à un étudiant : définis les notions clés, "
            "donne un exemple concret et termine par 3 questions de révision."
        ),
        Language.EN: (
            "Explain this text as you would to a student: define the key concepts, "
            "give a concrete example and end with 3 review questions."
        ),
    },
}

TITLE_PROMPTS: dict[Language, str] = {
    Language.FR: "Donne un titre court (maximum 8 mots) pour ce texte. Réponds uniquement avec le titre.",
    Language.EN: "Give a short title (8 words maximum) for this text. Reply with the title only.",
}


class AIServiceError(Exception):
    """Raised when the model or a source URL can't produce usable text."""


@dataclass
class URLContent:
    text: str
    image_url: str | None = None


def is_url(text: str) -> bool:
    candidate = text.strip()
    return " " not in candidate and candidate.lower().startswith(("http://", "https://"))


def extract_page_content(markup: str | bytes, base_url: str) -> URLContent:
    """
    Readable text and cover image of an HTML page.

    Navigation chrome (nav, header, footer) and scripts are dropped; the
    text comes from <article>, then <main>, then <body>. The image is the
    og:image, twitter:image or first article image, made absolute.
    """
    soup = BeautifulSoup(markup, "html.parser")

    image_url = None
    og = soup.find("meta", attrs={"property": "og:image"})
    twitter = soup.find("meta", attrs={"name": "twitter:image"})
    article_img = soup.select_one("article img[src]")
    if og and og.get("content"):
        image_url = og["content"]
    elif twitter and twitter.get("content"):
        image_url = twitter["content"]
    elif article_img:
        image_url = article_img["src"]
    if image_url:
        image_url = urljoin(base_url, image_url)
        if not image_url.startswith(("http://", "https://")):
            image_url = None

    for element in soup(["script", "style", "nav", "header", "footer", "noscript"]):
        element.decompose()

    container = soup.find("article") or soup.find("main") or soup.body or soup
    text = _WHITESPACE.sub(" ", container.get_text(" ")).strip()
    return URLContent(text=text, image_url=image_url)


class AIService:
    """
    OpenAI-backed text generation.

    Attributes:
        model: Chat model (default from settings)
        temperature: Sampling temperature (default from settings)
    """

    def __init__(self, model: str | None = None, temperature: float | None = None):
        self.client = OpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.OPENAI_MODEL
        self.temperature = temperature if temperature is not None else settings.OPENAI_TEMPERATURE

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def _complete(self, system_prompt: str, text: str, max_tokens: int) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text[:MAX_INPUT_CHARS]},
                ],
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise AIServiceError(f"AI generation failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()

    def generate_summary(self, text: str, style: SummaryStyle, language: Language) -> str:
        """
        Summarize `text` in the given style and language.

        Raises:
            AIServiceError: If the API call fails or returns nothing
        """
        style = SummaryStyle(style)
        language = Language(language)
        max_tokens = TWEET_MAX_TOKENS if style == SummaryStyle.TWEET else DEFAULT_MAX_TOKENS

        summary = self._complete(PROMPTS[style][language], text, max_tokens)
        if not summary:
            raise AIServiceError("AI returned an empty summary")

        logger.info(f"Generated {style.value} summary ({len(summary)} chars)")
        return summary

    def generate_title(self, text: str, language: Language) -> str | None:
        """Short title for `text`; None when the model gives nothing back."""
        title = self._complete(TITLE_PROMPTS[Language(language)], text, TITLE_MAX_TOKENS)
        return title.strip().strip('"').strip() or None

    # -------------------------------------------------------------------------
    # URL Sources
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_url_content(url: str) -> URLContent:
        """
        Download a page and extract its readable text.

        Raises:
            AIServiceError: For unsafe URLs, HTTP errors or pages without text
        """
        try:
            validate_external_url(url)
            with httpx.Client(
                timeout=URL_FETCH_TIMEOUT_SECONDS,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                event_hooks={"request": [lambda request: validate_external_url(str(request.url))]},
            ) as client:
                response = client.get(url)
                response.raise_for_status()
        except UnsafeURLError as e:
            raise AIServiceError(f"Refusing to fetch {url}: {e}") from e
        except httpx.HTTPError as e:
            raise AIServiceError(f"Failed to fetch URL content: {e}") from e

        content = extract_page_content(response.text, str(response.url))
        if not content.text:
            raise AIServiceError(f"No readable text found at {url}")

        logger.info(f"Extracted {len(content.text)} chars from {url}")
        return content
