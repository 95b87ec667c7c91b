import os
import logging
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI
from openai import AuthenticationError, RateLimitError, APIError

from extraction_config import ExtractionConfig, get_extraction_config

TRUNCATION_MARKER = "\n\n[Transcript truncated due to length]"

SYSTEM_PROMPT = " ".join([
    "You are a helpful assistant that summarizes YouTube video transcripts.",
    "Always respond in the same language used in the transcript.",
    "Return a concise multi-paragraph summary that highlights the main ideas.",
    "Do not hallucinate details that are not present in the transcript.",
])


@dataclass
class SummaryResult:
    """Either summary_text or error_message is set."""
    summary_text: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_message is None and bool(self.summary_text)


class VideoSummarizer:
    def __init__(self, api_key: Optional[str] = None, config: Optional[ExtractionConfig] = None,
                 client: Optional[AsyncOpenAI] = None):
        config = config or get_extraction_config()
        self.model = config.openai_model
        self.max_chars = config.summary_max_chars
        self.openai_api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY", "")
        self.client = client

        if self.client is None and self.openai_api_key:
            self.client = AsyncOpenAI(api_key=self.openai_api_key)
            logging.info("OpenAI client initialized successfully")

    def _prepare_transcript(self, transcript_text: str) -> str:
        trimmed = transcript_text.strip()
        if len(trimmed) > self.max_chars:
            logging.info(f"Transcript truncated from {len(trimmed)} to {self.max_chars} characters")
            return trimmed[:self.max_chars] + TRUNCATION_MARKER
        return trimmed

    def build_prompt(self, transcript_text: str, title: Optional[str]) -> str:
        user_prompt = "\n\n".join([
            f"Video title: {title or 'Untitled video'}",
            "Transcript:",
            self._prepare_transcript(transcript_text),
        ])
        return f"{SYSTEM_PROMPT}\n\n{user_prompt}"

    async def summarize(self, *, transcript_text: str, title: Optional[str] = None) -> SummaryResult:
        """
        Summarize a transcript with the configured OpenAI model.

        One request per call, no retries.

        Args:
            transcript_text: Extracted transcript (keyword-only)
            title: Video title used as context (keyword-only)

        Returns:
            SummaryResult with summary_text, or error_message describing the failure
        """
        if not isinstance(transcript_text, str) or not transcript_text.strip():
            logging.warning("Empty transcript - skipping LLM call")
            return SummaryResult(error_message="Transcript text was empty after trimming.")

        if self.client is None:
            logging.error("OPENAI_API_KEY environment variable is required but not set")
            return SummaryResult(error_message="Summarizer is missing AI configuration. Set OPENAI_API_KEY.")

        try:
            logging.info(f"Starting summarization for '{(title or '')[:60]}'")
            logging.debug(f"Transcript length: {len(transcript_text)} characters")

            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": self.build_prompt(transcript_text, title)}],
                max_tokens=1024,
                temperature=0.2,
                top_p=0.9,
            )

            text = ""
            if response.choices and response.choices[0].message.content:
                text = response.choices[0].message.content.strip()

            if not text:
                logging.warning("OpenAI API returned empty response")
                return SummaryResult(
                    error_message="AI model did not return any text. Check your API quota or model selection."
                )

            logging.info("Summary generated successfully")
            return SummaryResult(summary_text=text)

        except AuthenticationError as e:
            logging.error(f"OpenAI authentication failed: {e}")
            return SummaryResult(error_message=f"OpenAI authentication failed: {e}")
        except RateLimitError as e:
            logging.error(f"OpenAI rate limit exceeded: {e}")
            return SummaryResult(error_message=f"OpenAI rate limit exceeded: {e}")
        except APIError as e:
            logging.error(f"OpenAI API error: {e}")
            return SummaryResult(error_message=f"OpenAI API error: {e}")
        except Exception as e:
            logging.error(f"Unexpected error during summarization: {e}")
            return SummaryResult(error_message=f"Unknown error while summarizing: {e}")
